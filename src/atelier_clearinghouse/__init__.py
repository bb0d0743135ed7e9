"""Atelier Clearinghouse: offer negotiation, order lifecycle and escrow settlement."""

__version__ = "0.1.0"
