"""
Reference Motif Library
Ideal neighbor shells used as targets for motif matching.

All motifs are stored with unit nearest-neighbor distance; get_motif() scales
them to the nearest-neighbor distance of the system being analyzed.
"""
import numpy as np
from typing import Dict, List


def _normalize(vecs) -> np.ndarray:
    vecs = np.asarray(vecs, dtype=float)
    return vecs / np.linalg.norm(vecs, axis=1)[:, None]


def _hcp_shell() -> np.ndarray:
    in_plane = [(np.cos(t), np.sin(t), 0.0) for t in np.radians(np.arange(0, 360, 60))]
    # Layer above and layer below sit over the same triangle (ABA stacking)
    h = np.sqrt(2.0 / 3.0)
    r = 1.0 / np.sqrt(3.0)
    out_of_plane = [(r * np.cos(t), r * np.sin(t), z)
                    for z in (h, -h) for t in np.radians([30.0, 150.0, 270.0])]
    return np.array(in_plane + out_of_plane, dtype=float)


_PHI = (1.0 + np.sqrt(5.0)) / 2.0

# name -> (n, 3) unit vectors
MOTIFS: Dict[str, np.ndarray] = {
    'sc': _normalize([(1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1)]),
    'bcc': _normalize([(sx, sy, sz) for sx in (1, -1) for sy in (1, -1) for sz in (1, -1)]),
    'fcc': _normalize([(1, 1, 0), (1, -1, 0), (-1, 1, 0), (-1, -1, 0),
                       (1, 0, 1), (1, 0, -1), (-1, 0, 1), (-1, 0, -1),
                       (0, 1, 1), (0, 1, -1), (0, -1, 1), (0, -1, -1)]),
    'hcp': _hcp_shell(),
    'icosahedron': _normalize([(0, s1, s2 * _PHI) for s1 in (1, -1) for s2 in (1, -1)]
                              + [(s1, s2 * _PHI, 0) for s1 in (1, -1) for s2 in (1, -1)]
                              + [(s2 * _PHI, 0, s1) for s1 in (1, -1) for s2 in (1, -1)]),
    'diamond': _normalize([(1, 1, 1), (1, -1, -1), (-1, 1, -1), (-1, -1, 1)]),
}

MOTIF_ALIASES = {
    'octahedron': 'sc',
    'cube': 'bcc',
    'cuboctahedron': 'fcc',
    'tetrahedron': 'diamond',
}

MOTIF_LABELS = {
    'sc': 'Simple cubic (octahedron, 6)',
    'bcc': 'BCC first shell (cube, 8)',
    'fcc': 'FCC (cuboctahedron, 12)',
    'hcp': 'HCP (anticuboctahedron, 12)',
    'icosahedron': 'Icosahedron (12)',
    'diamond': 'Diamond (tetrahedron, 4)',
}


def available_motifs() -> List[str]:
    return sorted(MOTIFS.keys())


def get_motif(name: str, scale: float = 1.0) -> np.ndarray:
    """
    Return a copy of the named motif with nearest-neighbor distance ``scale``.

    Raises:
        KeyError: If the name is neither a motif nor an alias.
    """
    key = MOTIF_ALIASES.get(name.lower(), name.lower())
    if key not in MOTIFS:
        raise KeyError(f"Unknown motif '{name}'. Available: {', '.join(available_motifs())}")
    return MOTIFS[key] * float(scale)
