"""
Pixel identification (cloud, snow/ice, land/water) for AVHRR-class imagery.
"""

__version__ = '1.0.0'
