"""Runtime configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_REMOTE_TIMEOUT = 10.0
DEFAULT_PORT = 8000

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class VeriformConfig:
    """Veriform service configuration.

    Attributes:
        metadata_path: Directory holding forms/ and lookups.yaml
        remote_timeout: Seconds before a remote check is abandoned (and passes)
        log_level: Logging level name
        port: Port for the development server
    """

    metadata_path: Path
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT
    log_level: str = "info"
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> VeriformConfig:
        """Create config from environment variables.

        Resolution order for the metadata directory:
        1. VERIFORM_METADATA_PATH env var
        2. {base_path}/metadata
        3. ./metadata
        """
        metadata = os.environ.get("VERIFORM_METADATA_PATH")
        if metadata:
            metadata_path = Path(metadata)
        else:
            metadata_path = (base_path or Path.cwd()) / "metadata"

        return cls(
            metadata_path=metadata_path,
            remote_timeout=float(
                os.environ.get("VERIFORM_REMOTE_TIMEOUT", str(DEFAULT_REMOTE_TIMEOUT))
            ),
            log_level=os.environ.get("VERIFORM_LOG_LEVEL", "info").lower(),
            port=int(os.environ.get("VERIFORM_PORT", str(DEFAULT_PORT))),
        )


def configure_logging(level: str = "info") -> None:
    """Configure root logging for the CLI and the development server."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("veriform").setLevel(level.upper())
