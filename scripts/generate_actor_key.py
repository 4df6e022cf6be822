"""Generate an Ed25519 key pair for a marketplace actor and print its actors.yaml entry."""

import argparse

import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("actor_id")
    parser.add_argument("--role", choices=["farmer", "buyer", "admin"], default="buyer")
    parser.add_argument("--display-name")
    args = parser.parse_args()

    private_key = Ed25519PrivateKey.generate()
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()

    entry = {"id": args.actor_id, "role": args.role, "public_key": public_pem}
    if args.display_name:
        entry["display_name"] = args.display_name
    print("# actors.yaml entry")
    print(yaml.safe_dump({"actors": [entry]}, sort_keys=False))
    print("# keep this private key with the client")
    print(private_pem)


if __name__ == "__main__":
    main()
