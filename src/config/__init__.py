from config.settings import AppSettings, load_env

__all__ = [
    'AppSettings',
    'load_env',
]
