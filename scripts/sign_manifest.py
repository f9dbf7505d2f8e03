from __future__ import annotations

import argparse
import json

from liquidglass.core.policy.signing import sign_manifest


def main() -> None:
    ap = argparse.ArgumentParser(description="Sign a remote module manifest.")
    ap.add_argument("manifest", help="Unsigned manifest JSON.")
    ap.add_argument("--certificate-id", required=True, help="Trusted certificate id configured in security.json.")
    ap.add_argument("--algorithm", choices=["SHA256withRSA", "Ed25519", "SHA256"], default="SHA256withRSA")
    ap.add_argument("--key", default=None, help="Unencrypted PEM private key (not needed for SHA256).")
    ap.add_argument("--out", default=None, help="Output path (default: stdout).")
    args = ap.parse_args()

    with open(args.manifest, "r", encoding="utf-8") as f:
        raw = json.load(f)
    key_pem = None
    if args.key:
        with open(args.key, "rb") as f:
            key_pem = f.read()

    manifest = sign_manifest(raw, certificate_id=args.certificate_id, algorithm=args.algorithm, private_key_pem=key_pem)
    text = json.dumps(manifest.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(text + "\n")
        print(f"Signed manifest written to {args.out}")
    else:
        print(text)


if __name__ == "__main__":
    main()
