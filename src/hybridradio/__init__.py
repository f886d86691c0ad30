"""hybridradio package"""

# Re-export the radiodns subpackage so dotted paths like 'hybridradio.radiodns.*'
# work with tooling that traverses attributes instead of using importlib.
from . import radiodns as radiodns
