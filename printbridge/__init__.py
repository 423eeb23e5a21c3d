"""PrintBridge - Local print bridge with spool recovery.

PrintBridge is a small on-premise service that accepts a PDF or raster image,
fits it to the physical page, hands it to the local printing subsystem and
keeps an eye on the OS print spool, clearing it when jobs get stuck.

Usage:
    printbridge serve
    printbridge print document.pdf --copies 2 --rotation 90
    printbridge check-spool
    printbridge clean-spool
"""

__version__ = "0.1.0"
