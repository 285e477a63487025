from .version import __version__

DEFAULT_CONTROL_DIR = "debian"
DEFAULT_MANIFEST = "Debpackfile"
DEFAULT_STAGING_DIR = ".debpack-staging"
