from .g2p import DsDictionaryG2p, G2pCapability, G2pFallbacks, load_g2p
from .symbols import SymbolResolver
from .syllables import process_word

__all__ = [
    "DsDictionaryG2p",
    "G2pCapability",
    "G2pFallbacks",
    "SymbolResolver",
    "load_g2p",
    "process_word",
]
