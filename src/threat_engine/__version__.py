"""
Threat Engine Version Information
"""

__version__ = "1.0.0"
__version_info__ = (1, 0, 0)
__release_name__ = "Orchestration Edition"

# Version history
VERSION_HISTORY = {
    "1.0.0": {
        "name": "Orchestration Edition",
        "highlights": [
            "Deadline-bounded concurrent analysis with score fusion",
            "RFC 7208 sender authorization with shared lookup budget",
            "Online-trainable Bayesian classifier",
            "Declarative prioritized rule engine"
        ]
    }
}


def get_version() -> str:
    """Get the current version string."""
    return __version__

