from pathlib import Path
from typing import Annotated

from annotated_types import Ge
from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BUILDGRAPH_", frozen=True)

    root: Path = Path(".")
    """Project root that every relative path below is resolved against."""

    source_dir: str = "app"
    """Directory holding the site sources (styles, scripts, templates, images)."""

    tmp_dir: str = ".tmp"
    """Intermediate output directory. Ephemeral and safe to delete at any time."""

    dist_dir: str = "dist"
    """Final distributable output directory."""

    credentials_file: str = "ftp.json"
    """JSON file holding the transfer endpoint credentials, read at deploy time."""

    remote_root: str = "/public_html"
    """Remote directory the distributable tree is uploaded into."""

    transfer_parallel: Annotated[int, Ge(1)] = 10
    """Max number of concurrent uploads during deploy."""

    watch_debounce_ms: PositiveInt = 50
    """ Debounce window in milliseconds for grouping filesystem changes."""

    reload_buffer: Annotated[int, Ge(0)] = 16
    """ Max number of pending reload notifications buffered per preview client."""

    log_level: str = "INFO"

    def path(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)
