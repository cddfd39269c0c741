from collections.abc import Sequence
from types import TracebackType
from typing import Any, Self
from urllib.parse import parse_qs, urlparse

import httpx
from loguru import logger
from tenacity import RetryCallState

from app.core.config import settings
from app.core.enums import Game
from app.core.exceptions import AuthKeyInvalidError, BannerFetchError, InvalidSourceError
from app.schemas.gacha import RawPull
from app.services.banner import KNOWN_BANNERS, make_banner_id
from app.services.fetcher import (
    PageCallback,
    RetryPolicy,
    Sleep,
    default_sleep,
    parse_source_time,
    sort_chronologically,
)

AUTH_KEY_RETCODES = frozenset({-100, -101})
"""-100: authkey error, -101: authkey timeout"""

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json, text/plain, */*",
    "Referer": "https://webstatic-sea.hoyoverse.com/",
}

_GLOBAL_HOSTS = {
    Game.GENSHIN: "https://public-operation-hk4e-sg.hoyoverse.com",
    Game.HSR: "https://public-operation-hkrpg-sg.hoyoverse.com",
}
_CN_HOSTS = {
    Game.GENSHIN: "https://public-operation-hk4e.mihoyo.com",
    Game.HSR: "https://public-operation-hkrpg.mihoyo.com",
}
_LOG_PATHS = {
    Game.GENSHIN: "/gacha_info/api/getGachaLog",
    Game.HSR: "/common/gacha_record/api/getGachaLog",
}
_DEFAULT_GAME_BIZ = {Game.GENSHIN: "hk4e_global", Game.HSR: "hkrpg_global"}


class _RetryableStatusError(Exception):
    pass


def parse_gacha_url(url: str, game: Game) -> tuple[str, dict[str, str]]:
    """Extract the endpoint and the auth query parameters from a pasted gacha log URL.

    Raises:
        InvalidSourceError: If the URL has no ``authkey``.
    """
    query = parse_qs(urlparse(url.strip()).query)
    authkey = (query.get("authkey") or [""])[0]
    if not authkey:
        msg = "The URL does not contain an authkey"
        raise InvalidSourceError(msg)

    def first(key: str, default: str) -> str:
        return (query.get(key) or [default])[0] or default

    game_biz = first("game_biz", _DEFAULT_GAME_BIZ[game])
    hosts = _CN_HOSTS if game_biz.endswith("_cn") else _GLOBAL_HOSTS
    params = {
        "authkey": authkey,
        "authkey_ver": first("authkey_ver", "1"),
        "sign_type": first("sign_type", "2"),
        "game_biz": game_biz,
        "lang": first("lang", "en"),
    }
    if query.get("region"):
        params["region"] = query["region"][0]
    return hosts[game] + _LOG_PATHS[game], params


class HoyoApiSource:
    """Pages through a game's gacha log API, one banner at a time.

    The API pages newest first, using the id of the last pull of a page as the
    ``end_id`` cursor of the next request.
    """

    def __init__(  # noqa: PLR0913
        self,
        game: Game,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        request_delay: float | None = None,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep = default_sleep,
    ) -> None:
        self.game = game
        self.endpoint, self._auth_params = parse_gacha_url(url, game)
        self.page_size = page_size or settings.page_size
        self.max_pages = max_pages or settings.max_pages_per_banner
        self.request_delay = (
            settings.request_delay_seconds if request_delay is None else request_delay
        )
        self.timeout = timeout or settings.request_timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            multiplier=settings.retry_backoff_multiplier,
        )
        self._sleep = sleep
        self._client = client
        self._owns_client = client is None
        self._requests_made = 0
        self._gacha_types = {
            make_banner_id(game, info.gacha_type): info.gacha_type for info in KNOWN_BANNERS[game]
        }

    async def __aenter__(self) -> Self:
        if self._client is None:
            self._client = httpx.AsyncClient(headers=HEADERS, timeout=self.timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def banner_ids(self) -> Sequence[str]:
        return list(self._gacha_types)

    async def fetch_banner(self, banner_id: str, on_page: PageCallback) -> list[RawPull]:
        gacha_type = self._gacha_types[banner_id]
        records: list[RawPull] = []
        end_id = "0"

        for page in range(1, self.max_pages + 1):
            items = await self._request_page(banner_id, gacha_type, page, end_id)
            records.extend(self._to_raw_pull(banner_id, item) for item in items)
            await on_page(page, len(records))

            if len(items) < self.page_size:
                break

            last_id = items[-1].get("id")
            if not last_id:
                raise BannerFetchError(banner_id, f"page {page} has an item without an id")
            end_id = str(last_id)
        else:
            logger.warning(f"Reached the {self.max_pages} page limit for {banner_id}")

        logger.info(f"Fetched {len(records)} pulls for {banner_id}")
        # API order is newest first
        records.reverse()
        return sort_chronologically(records)

    async def _request_page(
        self, banner_id: str, gacha_type: str, page: int, end_id: str
    ) -> list[dict[str, Any]]:
        params = {
            **self._auth_params,
            "gacha_type": gacha_type,
            "page": str(page),
            "size": str(self.page_size),
            "end_id": end_id,
        }

        def log_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            delay = state.next_action.sleep if state.next_action else 0
            logger.warning(
                f"Request for {banner_id} page {page} failed ({error!r}), retrying in {delay:.1f}s"
            )

        retrying = self.retry_policy.retrying(
            (httpx.TransportError, _RetryableStatusError), sleep=self._sleep, before_sleep=log_retry
        )
        payload: Any = None
        try:
            async for attempt in retrying:
                with attempt:
                    payload = await self._get_json(params)
        except (httpx.TransportError, _RetryableStatusError) as e:
            raise BannerFetchError(
                banner_id, f"gave up after {self.retry_policy.max_attempts} attempts: {e!r}"
            ) from e
        except httpx.HTTPStatusError as e:
            raise BannerFetchError(banner_id, f"HTTP {e.response.status_code}") from e
        except ValueError as e:
            raise BannerFetchError(banner_id, "response is not valid JSON") from e

        return self._parse_payload(banner_id, payload)

    async def _get_json(self, params: dict[str, str]) -> Any:
        if self._client is None:
            msg = "HoyoApiSource must be used as an async context manager"
            raise RuntimeError(msg)

        if self._requests_made:
            await self._sleep(self.request_delay)
        self._requests_made += 1

        response = await self._client.get(
            self.endpoint, params=params, headers=HEADERS, timeout=self.timeout
        )
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise _RetryableStatusError(f"HTTP {response.status_code}")
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _parse_payload(banner_id: str, payload: Any) -> list[dict[str, Any]]:
        if not isinstance(payload, dict):
            raise BannerFetchError(banner_id, "response is not a JSON object")

        try:
            retcode = int(payload.get("retcode", -1))
        except (TypeError, ValueError):
            raise BannerFetchError(banner_id, "response has no valid retcode") from None
        message = str(payload.get("message", ""))

        if retcode in AUTH_KEY_RETCODES:
            raise AuthKeyInvalidError(retcode, message)
        if retcode != 0:
            raise BannerFetchError(banner_id, f"API error {retcode}: {message}")

        data = payload.get("data") or {}
        items = data.get("list") if isinstance(data, dict) else None
        if items is None:
            return []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise BannerFetchError(banner_id, "data.list is malformed")
        return items

    @staticmethod
    def _to_raw_pull(banner_id: str, item: dict[str, Any]) -> RawPull:
        return RawPull(
            external_id=str(item["id"]) if item.get("id") else None,
            banner_code=banner_id,
            item_name=str(item.get("name") or ""),
            item_type=str(item.get("item_type") or ""),
            rank_hint=str(item["rank_type"]) if item.get("rank_type") is not None else None,
            time=parse_source_time(item.get("time")),
        )
