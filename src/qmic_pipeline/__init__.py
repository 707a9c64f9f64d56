"""Host side acquisition pipeline for the QMIC SPAD camera.

The camera is a 24x24 array of single-photon avalanche diodes. Every detected
photon becomes a 32-bit event word holding the address of the pixel and a
narrow timestamp. This package downloads the words, decodes them to wide
timestamps and computes statistics on the acquisition.

The structure of this package is as follows:
 - :mod:`qmic_pipeline.core` contains the word formats, the decoders and the
   statistics computed on decoded events.
 - :mod:`qmic_pipeline.camera` defines the camera interface and a simulated
   camera that produces synthetic events.
 - :mod:`qmic_pipeline.outputs` writes raw words and decoded events to files.
 - :mod:`qmic_pipeline.util` contains data structures and utility functions
   used by the scripts.
 - :mod:`qmic_pipeline.scripts` hosts the entry points for the scripts that are
   exposed to the user.
"""
