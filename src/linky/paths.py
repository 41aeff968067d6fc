"""Config file lookup.

A bare config name is searched in, in order::

  ./linky.toml                      (development checkout)
  ~/.config/linky/linky.toml        (per-user install)
  /etc/linky/linky.toml             (system service)
"""

import os

ETC_DIR = "/etc/linky"
USER_DIR = os.path.join("~", ".config", "linky")


def search_dirs() -> list[str]:
    """Return the directories searched for a bare config name."""
    return [os.getcwd(), os.path.expanduser(USER_DIR), ETC_DIR]


def resolve_config(name: str) -> str:
    """Resolve a config file name to an absolute path.

    A *name* containing a ``/`` is an explicit path: it is made
    absolute and must exist.  A bare filename is looked up in each of
    :func:`search_dirs` and the first match wins.

    Args:
        name: A bare filename (e.g. ``"linky.toml"``) or a path
              (e.g. ``"conf/linky.toml"``).

    Raises:
        FileNotFoundError: If the file cannot be found.

    Example:
        >>> resolve_config("linky.toml")
        '/etc/linky/linky.toml'
    """
    if "/" in name:
        path = os.path.abspath(name)
        if not os.path.isfile(path):
            raise FileNotFoundError("config file not found: %s" % path)
        return path

    dirs = search_dirs()
    for directory in dirs:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)

    raise FileNotFoundError(
        "config file '%s' not found in %s" % (name, ", ".join(dirs))
    )
