"""Immutable configuration snapshot of one start/stop cycle."""

import logging
from dataclasses import dataclass
from typing import Callable

from services import SettingError, SettingService

logger = logging.getLogger(__name__)


def _with_fallback(getter: Callable[[], str], fallback: str, name: str) -> str:
    try:
        return getter()
    except SettingError as e:
        logger.warning(f"Using default for {name}: {e}")
        return fallback


@dataclass(frozen=True)
class ServerConfig:
    """Everything the listener and the endpoints need, read once per start."""

    links_path: str
    json_path: str
    json_enabled: bool
    encrypt: bool
    show_info: bool
    remark_model: str
    update_interval: str
    json_fragment: str
    json_noise: str
    json_mux: str
    json_rules: str
    title: str
    custom_headers: str
    custom_html: str
    domain: str = ""
    listen: str = ""
    port: int = 0
    cert_file: str = ""
    key_file: str = ""
    sub_uri: str = ""
    sub_json_uri: str = ""

    @property
    def tls_configured(self) -> bool:
        return bool(self.cert_file and self.key_file)

    @classmethod
    def load(cls, settings: SettingService) -> "ServerConfig":
        """Resolve every field.

        Raises:
            SettingError: If a required setting cannot be read. Optional
                settings fall back to their defaults instead.
        """
        domain = settings.get_sub_domain()
        links_path = settings.get_sub_path()
        json_path = settings.get_sub_json_path()
        json_enabled = settings.get_sub_json_enable()
        encrypt = settings.get_sub_encrypt()
        show_info = settings.get_sub_show_info()

        return cls(
            links_path=links_path,
            json_path=json_path,
            json_enabled=json_enabled,
            encrypt=encrypt,
            show_info=show_info,
            remark_model=_with_fallback(settings.get_remark_model, "-ieo", "remarkModel"),
            update_interval=_with_fallback(settings.get_sub_updates, "10", "subUpdates"),
            json_fragment=_with_fallback(settings.get_sub_json_fragment, "", "subJsonFragment"),
            json_noise=_with_fallback(settings.get_sub_json_noises, "", "subJsonNoises"),
            json_mux=_with_fallback(settings.get_sub_json_mux, "", "subJsonMux"),
            json_rules=_with_fallback(settings.get_sub_json_rules, "", "subJsonRules"),
            title=_with_fallback(settings.get_sub_title, "", "subTitle"),
            custom_headers=_with_fallback(settings.get_sub_custom_headers, "[]", "subCustomHeaders"),
            custom_html=_with_fallback(settings.get_sub_custom_html, "", "subCustomHtml"),
            domain=domain,
            cert_file=settings.get_sub_cert_file(),
            key_file=settings.get_sub_key_file(),
            listen=settings.get_sub_listen(),
            port=settings.get_sub_port(),
            sub_uri=_with_fallback(settings.get_sub_uri, "", "subURI"),
            sub_json_uri=_with_fallback(settings.get_sub_json_uri, "", "subJsonURI"),
        )
