from liquidglass.core.events.hub import EventHub, Subscription
from liquidglass.core.events.models import ModuleEvent, ModuleEventType

__all__ = ["EventHub", "ModuleEvent", "ModuleEventType", "Subscription"]
