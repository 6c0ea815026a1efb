"""Allow running as `python -m bytesize_digest`."""

from .cli import main

main()
