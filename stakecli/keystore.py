import os
import json
import time
from typing import List, Dict, Optional
from stakeproto.crypto.keys import generate_private_key, public_key_from_private
from stakeproto.crypto.addresses import address_from_pubkey

KEYSTORE_DIR = os.environ.get("STAKE_KEYS", os.path.expanduser("~/.stakeledger/keys"))


class KeyStore:
    """Named secp256k1 keys stored as one JSON file each."""

    def __init__(self, root_dir: str = KEYSTORE_DIR, prefix: str = "stk"):
        self.root_dir = root_dir
        self.prefix = prefix
        os.makedirs(self.root_dir, exist_ok=True)

    def create_key(self, name: str) -> Dict[str, str]:
        """Generates and saves a new key."""
        if self.get_key(name):
            raise ValueError(f"Key '{name}' already exists")
        return self._store(name, generate_private_key())

    def import_key(self, name: str, private_key_hex: str) -> Dict[str, str]:
        """Imports an existing private key."""
        if self.get_key(name):
            raise ValueError(f"Key '{name}' already exists")

        try:
            priv = bytes.fromhex(private_key_hex)
        except ValueError:
            raise ValueError("Invalid hex string")
        if len(priv) != 32:
            raise ValueError("Invalid private key length")

        return self._store(name, priv)

    def get_key(self, name: str) -> Optional[Dict[str, str]]:
        """Loads key by name."""
        path = os.path.join(self.root_dir, f"{name}.json")
        if not os.path.exists(path):
            return None

        with open(path, "r") as f:
            return json.load(f)

    def private_key(self, name: str) -> bytes:
        data = self.get_key(name)
        if data is None:
            raise KeyError(f"Key '{name}' not found")
        return bytes.fromhex(data["private_key"])

    def list_keys(self) -> List[Dict[str, str]]:
        """Lists all available keys (without private info)."""
        keys = []
        for filename in sorted(os.listdir(self.root_dir)):
            if filename.endswith(".json"):
                data = self.get_key(filename[:-5])
                if data:
                    keys.append({
                        "name": data["name"],
                        "address": data["address"],
                        "public_key": data["public_key"]
                    })
        return keys

    def _store(self, name: str, priv: bytes) -> Dict[str, str]:
        pub = public_key_from_private(priv)
        key_data = {
            "name": name,
            "address": address_from_pubkey(pub, prefix=self.prefix),
            "public_key": pub.hex(),
            "private_key": priv.hex(),
            "created_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }
        self._save_key_file(name, key_data)
        return key_data

    def _save_key_file(self, name: str, data: Dict[str, str]):
        path = os.path.join(self.root_dir, f"{name}.json")
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
        # Owner read/write only
        os.chmod(path, 0o600)
