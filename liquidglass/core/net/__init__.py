from liquidglass.core.net.transport import DEFAULT_HEADERS, HttpResponse, HttpTransport, Transport

__all__ = ["DEFAULT_HEADERS", "HttpResponse", "HttpTransport", "Transport"]
