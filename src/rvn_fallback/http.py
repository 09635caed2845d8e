"""Shared HTTP helpers used by the repository clients.

Every request goes through `checked_get` so transport failures surface as `TransportError`
with the offending URL attached.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import requests
from tqdm import tqdm

from .errors import TransportError
from .rvn_fallback import user_agent

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def create_session(purpose: str) -> requests.Session:
    """Create a session that identifies itself to upstream servers."""
    session = requests.Session()
    session.headers["User-Agent"] = user_agent(purpose)
    return session


def checked_get(session: requests.Session, url: str, *, context: str, **kwargs: Any) -> requests.Response:
    """Perform a GET request and fail on transport errors or non-success statuses.

    Args:
        session: Session to issue the request with
        url: The URL to fetch
        context: Short description of the request, used in error messages
        **kwargs: Passed through to `requests.Session.get`

    Returns:
        The successful response

    Raises:
        TransportError: if the request failed or the status is not 2xx

    """
    logger.debug("GET %s (%s)", url, context)
    try:
        response = session.get(url, **kwargs)
    except requests.RequestException as e:
        msg = f"{context}: request to {url} failed: {e}"
        raise TransportError(msg, url=url) from e
    if not response.ok:
        msg = f"{context}: {url} returned HTTP {response.status_code}"
        raise TransportError(msg, url=url, status=response.status_code)
    return response


def download_file(session: requests.Session, url: str, dest: Path, *, context: str) -> Path:
    """Stream `url` into `dest`.

    The body is written to a temporary sibling and renamed into place once complete, so an
    interrupted download never leaves a truncated file at `dest`.
    """
    response = checked_get(session, url, context=context, stream=True)
    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(f".{dest.name}.part")
    total = int(response.headers.get("Content-Length", 0)) or None
    try:
        with (
            partial.open("wb") as f,
            tqdm(desc=f"downloading {dest.name}", total=total, leave=False, unit="B", unit_scale=True) as t,
        ):
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                f.write(chunk)
                t.update(len(chunk))
        partial.replace(dest)
    except requests.RequestException as e:
        partial.unlink(missing_ok=True)
        msg = f"{context}: download of {url} was interrupted: {e}"
        raise TransportError(msg, url=url) from e
    except OSError:
        partial.unlink(missing_ok=True)
        raise
    return dest
