from .core.env import ENV, IS_DEV, IS_LOCAL, IS_PROD, IS_TEST, Env, get_env, pick

__all__ = ["ENV", "Env", "IS_DEV", "IS_LOCAL", "IS_PROD", "IS_TEST", "get_env", "pick"]
