from __future__ import annotations

import os
import warnings
from enum import StrEnum
from functools import cache


class Env(StrEnum):
    LOCAL = "local"
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


ALIASES: dict[str, Env] = {
    "development": Env.DEV,
    "testing": Env.TEST,
    "staging": Env.TEST,
    "production": Env.PROD,
}


def parse_env(raw: str | None) -> Env | None:
    if not raw:
        return None
    val = raw.strip().lower()
    try:
        return Env(val)
    except ValueError:
        return ALIASES.get(val)


@cache
def get_env() -> Env:
    """
    Resolve the deployment environment once per process.

    ``APP_ENV`` wins over ``ENVIRONMENT``; with neither set the service runs
    as ``local``. An unrecognized value also falls back to ``local`` and warns.
    """
    raw = os.getenv("APP_ENV") or os.getenv("ENVIRONMENT")
    env = parse_env(raw)
    if env is not None:
        return env
    if raw:
        warnings.warn(f"Unrecognized environment '{raw}', defaulting to 'local'.", RuntimeWarning, stacklevel=2)
    return Env.LOCAL


ENV: Env = get_env()
IS_LOCAL = ENV is Env.LOCAL
IS_DEV = ENV is Env.DEV
IS_TEST = ENV is Env.TEST
IS_PROD = ENV is Env.PROD


def pick(*, prod, nonprod, test=None):
    """
    Per-environment value, e.g. ``pick(prod=15, nonprod=30)`` for a timeout.

    ``test`` overrides ``nonprod`` when running under ``APP_ENV=test``.
    """
    env = get_env()
    if env is Env.PROD:
        return prod
    if env is Env.TEST and test is not None:
        return test
    return nonprod
