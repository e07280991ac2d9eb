"""Cycle activities.

Each activity performs one unit of work for the orchestrator:
- window: Clock and window policy, dated manifest
- candidates: Reduced candidate list for a cycle
- convert_image: Default transform capability (PNG → GeoTIFF)
"""
