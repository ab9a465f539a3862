"""Talk2M transport client (DataMailbox for data, M2Web for live access).

Usage:
    async with Talk2MClient(developer_id="...", token="...") as client:
        devices = await client.list_devices()
        batch = await client.fetch_incremental(0)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar
from urllib.parse import quote

import aiohttp

from ewon_sync.core.models import DataPoint, DeviceData, DeviceRecord, SyncBatch, TagData
from ewon_sync.engine.coercion import to_datetime
from ewon_sync.transport.base import DeviceTransport, TransportError

if TYPE_CHECKING:
    from datetime import datetime

    from ewon_sync.unified_config import Talk2MConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DATA_MAILBOX_URL = "https://data.talk2m.com"
DEFAULT_M2WEB_URL = "https://m2web.talk2m.com/t2mapi"

# Export block descriptor: instant values of all tags as text
LIVE_EXPORT_PARAM = "$dtIV$ftT"


def split_fields(line: str) -> list[str]:
    """Split a semicolon-separated line, ignoring separators inside quotes.

    Fields are returned as-is (quotes kept) so callers can tell quoted
    text from numbers.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        if char == ";" and not in_quotes:
            fields.append("".join(current))
            current = []
            continue
        current.append(char)
    fields.append("".join(current))
    return fields


def _unquote(field: str) -> str:
    field = field.strip()
    if len(field) >= 2 and field.startswith('"') and field.endswith('"'):
        return field[1:-1]
    return field


def parse_live_snapshot(text: str) -> dict[str, str]:
    """Parse an instant-value export into tag name → raw value text.

    The first non-blank line is a header naming the ``TagName`` and
    ``Value`` columns. Values keep their quotes.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return {}

    header = [_unquote(name).lower() for name in split_fields(lines[0])]
    try:
        name_index = header.index("tagname")
        value_index = header.index("value")
    except ValueError as e:
        raise TransportError(f"Unexpected live data header: {lines[0]!r}") from e

    values: dict[str, str] = {}
    for line in lines[1:]:
        fields = split_fields(line)
        if len(fields) <= max(name_index, value_index):
            logger.warning("Skipping malformed live data row: %r", line)
            continue
        values[_unquote(fields[name_index])] = fields[value_index].strip()
    return values


# Record-level decoding failures; the record is dropped, its siblings kept
_MALFORMED_RECORD = (KeyError, TypeError, ValueError, AttributeError)


def _parse_sync_date(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    return to_datetime(raw)


def _required_name(raw: dict[str, Any]) -> str:
    name = raw["name"]
    if name is None or name == "":
        raise ValueError("empty name")
    return str(name)


def _parse_device_record(raw: dict[str, Any]) -> DeviceRecord:
    return DeviceRecord(
        id=int(raw["id"]),
        name=_required_name(raw),
        last_sync_at=_parse_sync_date(raw.get("lastSynchroDate")),
    )


def _parse_tag(raw: dict[str, Any]) -> TagData:
    history = tuple(
        DataPoint(value=point.get("value"), date=point.get("date"), quality=point.get("quality"))
        for point in raw.get("history") or ()
    )
    return TagData(
        id=int(raw.get("id", 0)),
        name=_required_name(raw),
        data_type=raw.get("dataType"),
        value=raw.get("value"),
        quality=raw.get("quality"),
        history=history,
    )


def _parse_tags(raw_tags: Any, device_name: str) -> tuple[TagData, ...]:
    tags: list[TagData] = []
    for raw in raw_tags or ():
        try:
            tags.append(_parse_tag(raw))
        except _MALFORMED_RECORD as e:
            logger.warning("Skipping malformed tag on '%s': %s (%r)", device_name, e, raw)
    return tuple(tags)


def _parse_device_data(raw: dict[str, Any]) -> DeviceData:
    name = _required_name(raw)
    return DeviceData(
        id=int(raw["id"]),
        name=name,
        last_sync_at=_parse_sync_date(raw.get("lastSynchroDate")),
        tags=_parse_tags(raw.get("tags"), name),
    )


def _parse_records(
    raw_records: Any, parse: Callable[[dict[str, Any]], T], kind: str
) -> list[T]:
    """Parse a list of device records, logging and dropping malformed ones."""
    records: list[T] = []
    for raw in raw_records or ():
        try:
            records.append(parse(raw))
        except _MALFORMED_RECORD as e:
            logger.warning("Skipping malformed %s record: %s (%r)", kind, e, raw)
    return records


class Talk2MClient(DeviceTransport):
    """
    aiohttp client for the Talk2M DataMailbox and M2Web APIs.

    DataMailbox authenticates with the developer id plus either a
    DataMailbox token or account credentials. M2Web always uses account
    credentials, plus device credentials when the devices require them.
    """

    def __init__(
        self,
        *,
        developer_id: str,
        token: str = "",
        account: str = "",
        username: str = "",
        password: str = "",
        device_username: str = "",
        device_password: str = "",
        data_mailbox_url: str = DEFAULT_DATA_MAILBOX_URL,
        m2web_url: str = DEFAULT_M2WEB_URL,
        timeout: float = 30.0,
    ) -> None:
        self._developer_id = developer_id
        self._token = token
        self._account = account
        self._username = username
        self._password = password
        self._device_username = device_username
        self._device_password = device_password
        self._data_mailbox_url = data_mailbox_url.rstrip("/")
        self._m2web_url = m2web_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls, config: Talk2MConfig) -> Talk2MClient:
        return cls(
            developer_id=config.developer_id,
            token=config.token,
            account=config.account,
            username=config.username,
            password=config.password,
            device_username=config.device_username,
            device_password=config.device_password,
            data_mailbox_url=config.data_mailbox_url,
            m2web_url=config.m2web_url,
            timeout=config.timeout,
        )

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> Talk2MClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.disconnect()

    # ========== DataMailbox ==========

    def _dmweb_credentials(self) -> dict[str, str]:
        form = {"t2mdevid": self._developer_id}
        if self._token:
            form["t2mtoken"] = self._token
        else:
            form.update(
                t2maccount=self._account,
                t2musername=self._username,
                t2mpassword=self._password,
            )
        return form

    async def _dmweb_request(self, endpoint: str, **params: str) -> dict[str, Any]:
        """POST to a DataMailbox endpoint and return the decoded JSON body."""
        if not self._session:
            await self.connect()

        assert self._session is not None

        form = {**self._dmweb_credentials(), **params}
        url = f"{self._data_mailbox_url}/{endpoint}"
        try:
            async with self._session.post(url, data=form) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise TransportError(
                        f"DataMailbox {endpoint} failed: {text}", status_code=response.status
                    )
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransportError(f"Connection error on DataMailbox {endpoint}: {e}") from e

        if not isinstance(body, dict):
            raise TransportError(f"Unexpected DataMailbox {endpoint} response: {body!r}")
        if body.get("success") is False:
            raise TransportError(
                f"DataMailbox {endpoint} rejected: {body.get('message', 'unknown error')}",
                status_code=body.get("code"),
            )
        return body

    async def list_devices(self) -> list[DeviceRecord]:
        body = await self._dmweb_request("getewons")
        return _parse_records(body.get("ewons"), _parse_device_record, "device")

    async def fetch_device(self, device_id: int) -> DeviceData:
        body = await self._dmweb_request("getewon", ewonId=str(device_id))
        try:
            return _parse_device_data(body)
        except _MALFORMED_RECORD as e:
            raise TransportError(
                f"Malformed DataMailbox getewon response for {device_id}: {e}"
            ) from e

    async def fetch_incremental(self, since_transaction_id: int) -> SyncBatch | None:
        params = {"createTransaction": "true", "includeHistory": "true"}
        # Omitting the transaction id starts from the oldest stored data
        if since_transaction_id > 0:
            params["lastTransactionId"] = str(since_transaction_id)

        body = await self._dmweb_request("syncdata", **params)
        if body.get("transactionId") is None:
            return None
        try:
            transaction_id = int(body["transactionId"])
        except (TypeError, ValueError) as e:
            raise TransportError(
                f"Malformed DataMailbox transaction id: {body['transactionId']!r}"
            ) from e
        return SyncBatch(
            transaction_id=transaction_id,
            more_data_available=bool(body.get("moreDataAvailable", False)),
            devices=tuple(_parse_records(body.get("ewons"), _parse_device_data, "device data")),
        )

    # ========== M2Web ==========

    def _m2web_credentials(self) -> dict[str, str]:
        params = {
            "t2mdeveloperid": self._developer_id,
            "t2maccount": self._account,
            "t2musername": self._username,
            "t2mpassword": self._password,
        }
        if self._device_username:
            params["t2mdeviceusername"] = self._device_username
            params["t2mdevicepassword"] = self._device_password
        return params

    async def _m2web_request(self, device_name: str, form: str, **params: str) -> str:
        """GET a device form through M2Web and return the response text."""
        if not self._session:
            await self.connect()

        assert self._session is not None

        url = f"{self._m2web_url}/get/{quote(device_name, safe='')}/rcgi.bin/{form}"
        query = {**params, **self._m2web_credentials()}
        try:
            async with self._session.get(url, params=query) as response:
                text = await response.text()
                if response.status >= 400:
                    raise TransportError(
                        f"M2Web {form} on '{device_name}' failed: {text}",
                        status_code=response.status,
                    )
                return text
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransportError(f"Connection error reaching '{device_name}': {e}") from e

    async def fetch_live_snapshot(self, device_name: str) -> dict[str, str]:
        text = await self._m2web_request(device_name, "ParamForm", AST_Param=LIVE_EXPORT_PARAM)
        return parse_live_snapshot(text)

    async def write_tag(self, device_name: str, tag_name: str, value: str) -> None:
        await self._m2web_request(device_name, "UpdateTagForm", TagName1=tag_name, TagValue1=value)
        logger.info("Wrote %r to tag '%s' on '%s'", value, tag_name, device_name)
