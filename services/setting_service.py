"""Typed read API over the settings table."""

import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import Setting, get_session_factory

from .errors import SettingError

logger = logging.getLogger(__name__)


# Value returned when a key has no row in the settings table
DEFAULT_SETTINGS: Dict[str, str] = {
    "subEnable": "false",
    "subListen": "",
    "subPort": "2096",
    "subCertFile": "",
    "subKeyFile": "",
    "subDomain": "",
    "subPath": "/sub/",
    "subJsonPath": "/json/",
    "subJsonEnable": "false",
    "subEncrypt": "true",
    "subShowInfo": "true",
    "remarkModel": "-ieo",
    "subUpdates": "12",
    "subJsonFragment": "",
    "subJsonNoises": "",
    "subJsonMux": "",
    "subJsonRules": "",
    "subTitle": "",
    "subCustomHeaders": "[]",
    "subCustomHtml": "",
    "subURI": "",
    "subJsonURI": "",
}

_TRUE_VALUES = {"1", "t", "true", "yes", "on"}
_FALSE_VALUES = {"0", "f", "false", "no", "off"}


class SettingService:
    """Reads runtime settings, falling back to DEFAULT_SETTINGS.

    Every getter raises SettingError when the store cannot be read or the
    stored value does not parse.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or get_session_factory()

    def get_string(self, key: str) -> str:
        try:
            with self._session_factory() as db:
                setting = db.query(Setting).filter(Setting.key == key).first()
                if setting is not None:
                    return setting.value or ""
        except SQLAlchemyError as e:
            raise SettingError(f"Failed to read setting {key}", e) from e

        if key not in DEFAULT_SETTINGS:
            raise SettingError(f"Unknown setting {key}")
        return DEFAULT_SETTINGS[key]

    def get_bool(self, key: str) -> bool:
        value = self.get_string(key).strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise SettingError(f"Setting {key} is not a boolean: {value!r}")

    def get_int(self, key: str) -> int:
        value = self.get_string(key).strip()
        try:
            return int(value)
        except ValueError as e:
            raise SettingError(f"Setting {key} is not an integer: {value!r}", e) from e

    def set_value(self, key: str, value) -> None:
        """Insert or update a setting.

        Booleans are stored as "true"/"false".
        """
        if isinstance(value, bool):
            value = "true" if value else "false"
        try:
            with self._session_factory() as db:
                setting = db.query(Setting).filter(Setting.key == key).first()
                if setting is None:
                    db.add(Setting(key=key, value=str(value)))
                else:
                    setting.value = str(value)
                db.commit()
        except SQLAlchemyError as e:
            raise SettingError(f"Failed to write setting {key}", e) from e
        logger.debug(f"Setting updated: {key}")

    # Subscription server settings

    def get_sub_enable(self) -> bool:
        return self.get_bool("subEnable")

    def get_sub_listen(self) -> str:
        return self.get_string("subListen")

    def get_sub_port(self) -> int:
        port = self.get_int("subPort")
        if not 0 <= port <= 65535:
            raise SettingError(f"Setting subPort is out of range: {port}")
        return port

    def get_sub_cert_file(self) -> str:
        return self.get_string("subCertFile")

    def get_sub_key_file(self) -> str:
        return self.get_string("subKeyFile")

    def get_sub_domain(self) -> str:
        return self.get_string("subDomain")

    def get_sub_path(self) -> str:
        return self.get_string("subPath")

    def get_sub_json_path(self) -> str:
        return self.get_string("subJsonPath")

    def get_sub_json_enable(self) -> bool:
        return self.get_bool("subJsonEnable")

    def get_sub_encrypt(self) -> bool:
        return self.get_bool("subEncrypt")

    def get_sub_show_info(self) -> bool:
        return self.get_bool("subShowInfo")

    def get_remark_model(self) -> str:
        return self.get_string("remarkModel")

    def get_sub_updates(self) -> str:
        return self.get_string("subUpdates")

    def get_sub_json_fragment(self) -> str:
        return self.get_string("subJsonFragment")

    def get_sub_json_noises(self) -> str:
        return self.get_string("subJsonNoises")

    def get_sub_json_mux(self) -> str:
        return self.get_string("subJsonMux")

    def get_sub_json_rules(self) -> str:
        return self.get_string("subJsonRules")

    def get_sub_title(self) -> str:
        return self.get_string("subTitle")

    def get_sub_custom_headers(self) -> str:
        return self.get_string("subCustomHeaders")

    def get_sub_custom_html(self) -> str:
        return self.get_string("subCustomHtml")

    def get_sub_uri(self) -> str:
        return self.get_string("subURI")

    def get_sub_json_uri(self) -> str:
        return self.get_string("subJsonURI")
