"""JSON accounts file shared with the opencode antigravity auth plugin.

The file uses camelCase keys and epoch milliseconds. Runtime models use epoch
seconds, so conversion happens here and nowhere else. Keys this project does
not understand are kept and written back untouched.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from agimage.domain.interfaces.stores import AccountStore
from agimage.domain.models.account import Account, AccountsConfig, CachedQuota
from agimage.domain.models.common import AccountKey

logger = logging.getLogger(__name__)

_ACCOUNT_KEYS = (
    "email", "refreshToken", "projectId", "managedProjectId",
    "lastUsed", "rateLimitedUntil", "cachedImageQuota",
)


def _ms_to_s(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value) / 1000
    except (TypeError, ValueError):
        return None


def _s_to_ms(value: Optional[float]) -> Optional[int]:
    return None if value is None else int(value * 1000)


def _parse_cached_quota(raw: Any) -> Optional[CachedQuota]:
    """Returns None when the entry is missing or unusable, meaning quota unknown."""
    if not isinstance(raw, dict):
        return None
    try:
        fraction = float(raw.get("remainingFraction"))
    except (TypeError, ValueError):
        return None
    return CachedQuota(
        remaining_fraction=fraction,
        updated_at=_ms_to_s(raw.get("updatedAt")) or 0.0,
        reset_time=raw.get("resetTime"),
    )


def account_from_dict(data: Dict[str, Any]) -> Account:
    quota = _parse_cached_quota(data.get("cachedImageQuota"))
    return Account(
        email=AccountKey(str(data.get("email", ""))),
        refresh_token=str(data.get("refreshToken", "")),
        project_id=data.get("projectId") or None,
        managed_project_id=data.get("managedProjectId") or None,
        # 0 means "never" in files written by older tools
        last_used=_ms_to_s(data.get("lastUsed")) or None,
        rate_limited_until=_ms_to_s(data.get("rateLimitedUntil")) or None,
        cached_quota=quota,
        extra={k: v for k, v in data.items() if k not in _ACCOUNT_KEYS},
    )


def account_to_dict(account: Account) -> Dict[str, Any]:
    data: Dict[str, Any] = {"email": account.email, "refreshToken": account.refresh_token}
    if account.project_id:
        data["projectId"] = account.project_id
    if account.managed_project_id:
        data["managedProjectId"] = account.managed_project_id
    if account.last_used is not None:
        data["lastUsed"] = _s_to_ms(account.last_used)
    if account.rate_limited_until is not None:
        data["rateLimitedUntil"] = _s_to_ms(account.rate_limited_until)
    if account.cached_quota is not None:
        quota: Dict[str, Any] = {
            "remainingFraction": account.cached_quota.remaining_fraction,
            "updatedAt": _s_to_ms(account.cached_quota.updated_at),
        }
        if account.cached_quota.reset_time:
            quota["resetTime"] = account.cached_quota.reset_time
        data["cachedImageQuota"] = quota
    data.update(account.extra)
    return data


class JsonAccountStore(AccountStore):
    """Reads the first accounts file that exists and writes back to the same one."""

    def __init__(self, paths: List[Path]):
        if not paths:
            raise ValueError("At least one accounts file path is required")
        self.paths = [Path(p) for p in paths]
        self.loaded_path: Optional[Path] = None

    def load(self) -> Optional[AccountsConfig]:
        for path in self.paths:
            if not path.is_file():
                continue
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable accounts file {path}: {e}")
                continue
            if not isinstance(data, dict):
                logger.warning(f"Skipping accounts file {path}: top level is not an object")
                continue

            self.loaded_path = path
            raw_accounts = data.get("accounts") or []
            accounts = [account_from_dict(a) for a in raw_accounts if isinstance(a, dict) and a.get("email")]
            logger.info(f"Loaded {len(accounts)} account(s) from {path}")
            return AccountsConfig(
                accounts=accounts,
                extra={k: v for k, v in data.items() if k != "accounts"},
            )

        logger.info(f"No accounts file found in: {', '.join(str(p) for p in self.paths)}")
        return None

    def save(self, config: AccountsConfig) -> None:
        path = self.loaded_path or self.paths[0]
        data = dict(config.extra)
        data["accounts"] = [account_to_dict(a) for a in config.accounts]
        path.parent.mkdir(parents=True, exist_ok=True)
        # Readers never see a half-written file
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {len(config.accounts)} account(s) to {path}")
