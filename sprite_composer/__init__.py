"""Sprite-sheet segmentation and generative trait composition.

Cuts individual trait assets out of chroma-keyed sheets, orders layers by
their parent/child depth, expands per-layer trait choices into capped
combinations, and places traits on a shared 1024x1024 logical canvas.
"""
