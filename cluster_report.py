"""
Cluster Reports
Tabular summaries and text exports of MatchEnv results (pandas DataFrames,
CSV, XYZ and JSON-ready dictionaries).
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
import pandas as pd

from match_env import MatchEnv


def _defined_slots(env: np.ndarray) -> np.ndarray:
    return ~np.isnan(env).any(axis=1)


def _defined_slots_count(tot: np.ndarray) -> np.ndarray:
    if tot.size == 0:
        return np.zeros(len(tot), dtype=int)
    return (~np.isnan(tot).any(axis=2)).sum(axis=1)


def cluster_summary(match: MatchEnv) -> pd.DataFrame:
    """
    One row per cluster: size, number of defined slots and mean neighbor
    distance of the averaged environment. Sorted by size, largest first.
    """
    labels = match.clusters()
    sizes = np.bincount(labels, minlength=match.num_clusters) if len(labels) else np.zeros(0, dtype=int)

    rows = []
    for label, env in match.environments().items():
        defined = _defined_slots(env)
        dists = np.linalg.norm(env[defined], axis=1)
        rows.append({
            'cluster': label,
            'size': int(sizes[label]),
            'defined_slots': int(defined.sum()),
            'mean_distance': float(dists.mean()) if len(dists) else np.nan,
        })

    df = pd.DataFrame(rows, columns=['cluster', 'size', 'defined_slots', 'mean_distance'])
    return df.sort_values(['size', 'cluster'], ascending=[False, True]).reset_index(drop=True)


def particle_table(match: MatchEnv, points: Optional[np.ndarray] = None) -> pd.DataFrame:
    """
    One row per particle: cluster label and number of environment vectors,
    plus coordinates if ``points`` is given and the motif flag after match_motif().
    """
    labels = match.clusters()
    tot = match.total_environment()
    df = pd.DataFrame({
        'particle': np.arange(len(labels)),
        'cluster': labels,
        'n_vectors': _defined_slots_count(tot),
    })
    if points is not None:
        points = np.asarray(points, dtype=float)
        df['x'], df['y'], df['z'] = points[:, 0], points[:, 1], points[:, 2]
    if match.mode == 'motif':
        df['matches_motif'] = match.motif_matches()
    return df


def format_labels_csv(match: MatchEnv, points: Optional[np.ndarray] = None) -> str:
    """Per-particle table as CSV string."""
    return particle_table(match, points).to_csv(index=False, float_format='%.6f')


def format_xyz(points: np.ndarray, labels: np.ndarray, comment: str = "") -> str:
    """
    Format positions as an XYZ file, one pseudo-element per cluster
    (C0, C1, ...) so viewers can color by cluster.
    """
    points = np.asarray(points, dtype=float)
    lines = [str(len(points)), comment]
    for cart, label in zip(points, labels):
        lines.append(f"C{int(label)}  {cart[0]:.6f}  {cart[1]:.6f}  {cart[2]:.6f}")
    return "\n".join(lines)


def environment_to_dict(match: MatchEnv) -> Dict:
    """Averaged environments keyed by cluster label, NaN slots as None (JSON-ready)."""
    out = {
        'rmax': match.rmax,
        'k': match.num_neighbors,
        'num_particles': match.num_particles,
        'num_clusters': match.num_clusters,
        'environments': {},
    }
    for label, env in match.environments().items():
        out['environments'][str(label)] = [
            None if np.isnan(vec).any() else [float(x) for x in vec] for vec in env
        ]
    return out
