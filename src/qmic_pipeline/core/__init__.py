"""Decoding and statistics of photon events.

The structure of this package is as follows:
 - :mod:`event_format` describes the layout of the compressed and raw event
   words and the geometry of the pixel array.
 - :mod:`events` hosts the container for decoded events and its file format.
 - :mod:`decoder` turns event words into addresses and wide timestamps.
 - :mod:`coincidence` finds simultaneous detections in raw events.
 - :mod:`frame_stats` summarizes the frame length histogram.
 - :mod:`intensity` accumulates per-pixel counts over an exposure.
 - :mod:`settings` contains the models of the acquisition settings file.
"""
