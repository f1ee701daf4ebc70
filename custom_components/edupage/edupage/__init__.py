"""EduPage Python library package.

Keep package import lightweight; import heavy submodules explicitly where needed.
"""

__version__ = "0.1.0"
__all__ = [
	"client",
	"config",
	"exceptions",
	"menu",
	"models",
	"normalizer",
	"renderer",
	"school_days",
	"students",
	"sync",
]
