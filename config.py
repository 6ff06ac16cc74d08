import logging
import os
import yaml
import keyring

from settings_schema import SettingsSchema, validate_settings

ENV_PREFIX = "FITTRACK_"


class YamlConfig:
    """Tracker settings from ``settings.yaml``.

    Store and identity credentials are kept in the OS keyring when
    ``ENCRYPT_SETTINGS=1``; the YAML file then only records that they are set.
    ``FITTRACK_<KEY>`` environment variables override file values on load.
    """

    SECRET_KEYS = ("identity_api_key", "store_auth_token")

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.use_keyring = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.keyring_service = "fittrack"

    def _read_file(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _restore_secrets(self, data: dict) -> dict:
        for key in self.SECRET_KEYS:
            if key not in data:
                continue
            secret = keyring.get_password(self.keyring_service, key)
            if secret is None:
                del data[key]
            else:
                data[key] = secret
        return data

    @staticmethod
    def _env_overrides() -> dict:
        return {
            name[len(ENV_PREFIX):].lower(): value
            for name, value in os.environ.items()
            if name.startswith(ENV_PREFIX)
        }

    def load(self) -> dict:
        data = self._read_file()
        if self.use_keyring:
            data = self._restore_secrets(data)
        data.update(self._env_overrides())
        return data

    def save(self, data: dict) -> None:
        stored = dict(data)
        if self.use_keyring:
            for key in self.SECRET_KEYS:
                if stored.get(key) is not None:
                    keyring.set_password(self.keyring_service, key, str(stored[key]))
                    stored[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(stored, f)


def load_settings(path: str = "settings.yaml") -> SettingsSchema:
    data = YamlConfig(path).load()
    validate_settings(data)
    return SettingsSchema(**data)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
