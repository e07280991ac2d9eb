"""IMS Radar Acquisition Service.

Periodically downloads the most recent window of IMS radar images into a
local work folder and converts each one into a GeoTIFF, publishing cycle
state and progress to any number of observers.
"""

__version__ = "0.1.0"
