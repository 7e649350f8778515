from pathlib import Path
from typing import Dict, Optional

import structlog
import yaml
from pydantic import BaseModel, ValidationError
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from ..errors import ConnectivityError
from ..utils import DBSH_HOME

logger = structlog.get_logger(__name__)

DATASOURCES_FILENAME = "datasources.yaml"

# Sync dialects that have a drop-in asyncio driver.
ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
}


class DataSource(BaseModel):
    """A named database declared in datasources.yaml."""

    name: str
    url: str
    description: Optional[str] = None


class DataSourceResolver:
    """
    Turns whatever the user typed after `connect` into a SQLAlchemy URL.

    Three spellings are understood: a URL (``sqlite:///inventory.db``), the
    name of a declared data source (``warehouse``) and an ODBC style
    connection string (``DSN=warehouse;UID=jdoe;PWD=secret``) whose UID/PWD
    override the credentials of the named source.
    """

    def __init__(self, home: Optional[Path] = None):
        self.sources_path = (home or DBSH_HOME) / DATASOURCES_FILENAME

    def load(self) -> Dict[str, DataSource]:
        """Reads the data source catalog, keyed by lower-cased name."""
        if not self.sources_path.is_file():
            logger.debug("resolver.catalog.missing", path=str(self.sources_path))
            return {}
        try:
            with open(self.sources_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConnectivityError(
                f"{self.sources_path}: unable to read data sources: {e}"
            ) from e
        if not isinstance(raw, dict):
            raise ConnectivityError(
                f"{self.sources_path}: expected a mapping of data source names"
            )

        sources: Dict[str, DataSource] = {}
        for name, entry in raw.items():
            if isinstance(entry, str):
                entry = {"url": entry}
            try:
                source = DataSource(name=str(name), **(entry or {}))
            except (TypeError, ValidationError) as e:
                raise ConnectivityError(
                    f"{self.sources_path}: invalid data source '{name}': {e}"
                ) from e
            sources[source.name.lower()] = source
        logger.debug("resolver.catalog.loaded", count=len(sources))
        return sources

    def resolve(self, dsn: str) -> URL:
        dsn = dsn.strip()
        if not dsn:
            raise ConnectivityError("empty data source")
        if "://" in dsn:
            return self._to_url(dsn)
        if "=" in dsn:
            return self._from_connection_string(dsn)
        return self._to_url(self._lookup(dsn).url)

    def _lookup(self, name: str) -> DataSource:
        source = self.load().get(name.lower())
        if source is None:
            raise ConnectivityError(f"{name}: unknown data source")
        return source

    def _from_connection_string(self, dsn: str) -> URL:
        params: Dict[str, str] = {}
        for part in dsn.split(";"):
            if not part.strip():
                continue
            key, sep, value = part.partition("=")
            if not sep:
                raise ConnectivityError(f"malformed connection string near '{part}'")
            params[key.strip().upper()] = value.strip()

        name = params.pop("DSN", None)
        if not name:
            raise ConnectivityError("connection string does not name a DSN")
        url = self._to_url(self._lookup(name).url)
        if "UID" in params:
            url = url.set(username=params.pop("UID"))
        if "PWD" in params:
            url = url.set(password=params.pop("PWD"))
        if params:
            logger.debug("resolver.connection_string.ignored", keys=sorted(params))
        return url

    @staticmethod
    def _to_url(value: str) -> URL:
        try:
            url = make_url(value)
        except ArgumentError as e:
            raise ConnectivityError(f"{value}: invalid database URL") from e
        driver = ASYNC_DRIVERS.get(url.drivername)
        if driver:
            url = url.set(drivername=driver)
        return url
