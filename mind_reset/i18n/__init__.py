from .core import DEFAULT_LOCALE, resolve_locale, t, t_list

__all__ = ["DEFAULT_LOCALE", "resolve_locale", "t", "t_list"]
