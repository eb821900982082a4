"""
OpenPGP packet codecs.

Writers are stream filters with write(), close() and discard(); readers are
file-like objects with read(). Submodules are imported directly, e.g.
``from pgp_stream.packets.armor import ArmorWriter``.
"""
