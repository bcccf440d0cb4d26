"""
Local Environment Explorer
Streamlit application for clustering particles by matching local environments
and for testing particles against ideal reference motifs
"""
import streamlit as st
import numpy as np
import pandas as pd
import json
import logging
from typing import Dict, Optional
import plotly.graph_objects as go
import time

from logging_config import setup_logging
from crystal_builder import (
    BRAVAIS_BASIS, CRYSTAL_LABELS, NEAREST_NEIGHBOR, build_crystal, default_params,
    jitter_positions, remove_particles
)
from motif_library import MOTIF_LABELS, available_motifs, get_motif
from match_config import MAX_NUM_NEIGHBORS, MAX_THRESHOLD_RATIO
from match_env import MatchEnv
from exceptions import MatchEnvError
from cluster_report import (
    cluster_summary, particle_table, format_labels_csv, format_xyz, environment_to_dict
)

setup_logging(level=logging.INFO)
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="Local Environment Explorer",
    page_icon="🔬",
    layout="wide"
)

st.markdown("""
<style>
.metric-card {
    background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
    padding: 1rem;
    border-radius: 10px;
    color: white;
    text-align: center;
    margin: 0.5rem 0;
}
.metric-card h3 { margin: 0; font-size: 0.9rem; opacity: 0.9; }
.metric-card h1 { margin: 0.5rem 0 0 0; font-size: 1.8rem; }
</style>
""", unsafe_allow_html=True)

CLUSTER_COLORS = ['#2563eb', '#16a34a', '#dc2626', '#9333ea', '#ea580c',
                  '#0891b2', '#db2777', '#65a30d', '#4b5563', '#ca8a04']


def metric_card(title: str, value: str) -> None:
    st.markdown(f'<div class="metric-card"><h3>{title}</h3><h1>{value}</h1></div>',
                unsafe_allow_html=True)


def generate_configuration(crystal: str, a: float, reps: int, sigma: float,
                           n_vacancies: int, seed: int):
    """Build the crystal, then remove random particles and add noise."""
    box, points = build_crystal(crystal, default_params(crystal, a), reps=(reps, reps, reps))
    rng = np.random.default_rng(seed)
    if n_vacancies > 0:
        n_remove = min(n_vacancies, len(points) - 1)
        points = remove_particles(points, rng.choice(len(points), size=n_remove, replace=False))
    if sigma > 0:
        points = jitter_positions(points, sigma, seed=seed)
    return box, points


def generate_cluster_figure(box, points: np.ndarray, labels: np.ndarray, title: str = "") -> go.Figure:
    """3D scatter of the particles colored by cluster, with the box edges."""
    fig = go.Figure()

    lat_vecs = box.lattice
    corners = np.array([
        [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
        [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1]
    ])
    cart_corners = corners @ lat_vecs
    edges = [
        (0, 1), (1, 2), (2, 3), (3, 0),
        (4, 5), (5, 6), (6, 7), (7, 4),
        (0, 4), (1, 5), (2, 6), (3, 7)
    ]
    for i, j in edges:
        fig.add_trace(go.Scatter3d(
            x=[cart_corners[i, 0], cart_corners[j, 0]],
            y=[cart_corners[i, 1], cart_corners[j, 1]],
            z=[cart_corners[i, 2], cart_corners[j, 2]],
            mode='lines',
            line=dict(color='gray', width=1),
            showlegend=False,
            hoverinfo='skip'
        ))

    wrapped = box.wrap_positions(points)
    for label in np.unique(labels):
        mask = labels == label
        coords = wrapped[mask]
        fig.add_trace(go.Scatter3d(
            x=coords[:, 0], y=coords[:, 1], z=coords[:, 2],
            mode='markers',
            marker=dict(size=4, color=CLUSTER_COLORS[int(label) % len(CLUSTER_COLORS)], opacity=0.85),
            name=f"Cluster {label} ({int(mask.sum())})",
            hoverinfo='name'
        ))

    fig.update_layout(
        scene=dict(aspectmode='data'),
        height=550,
        margin=dict(l=0, r=0, t=30, b=0),
        title=dict(text=title, font=dict(size=12)),
    )
    return fig


def generate_environment_figure(env: np.ndarray, reference: Optional[np.ndarray] = None,
                                title: str = "") -> go.Figure:
    """Spokes from the origin to each defined slot of an averaged environment."""
    fig = go.Figure()
    defined = ~np.isnan(env).any(axis=1)
    for slot in np.where(defined)[0]:
        v = env[slot]
        fig.add_trace(go.Scatter3d(
            x=[0, v[0]], y=[0, v[1]], z=[0, v[2]],
            mode='lines+markers',
            line=dict(color='#2563eb', width=4),
            marker=dict(size=[2, 6], color='#2563eb'),
            name=f"slot {slot}",
            showlegend=False
        ))
    if reference is not None:
        fig.add_trace(go.Scatter3d(
            x=reference[:, 0], y=reference[:, 1], z=reference[:, 2],
            mode='markers',
            marker=dict(size=5, color='red', symbol='diamond', opacity=0.6),
            name='Motif'
        ))
    fig.update_layout(
        scene=dict(aspectmode='data'),
        height=350,
        margin=dict(l=0, r=0, t=25, b=0),
        title=dict(text=title, font=dict(size=11)),
    )
    return fig


def run_analysis(box, points: np.ndarray, rmax: float, k: int, threshold: float,
                 hard_r: bool, n_workers: int) -> Dict:
    """Run clustering and collect tables and exports. Errors are returned, not raised."""
    results = {'success': False, 'error': None}
    try:
        t0 = time.time()
        match = MatchEnv(box, rmax=rmax, k=k, n_workers=n_workers)
        match.cluster(points, threshold, hard_r=hard_r)
        results['labels'] = match.clusters()
        results['summary'] = cluster_summary(match)
        results['particles'] = particle_table(match, points)
        results['environments'] = match.environments()
        results['csv'] = format_labels_csv(match, points)
        results['xyz'] = format_xyz(points, results['labels'],
                                    comment=f"rmax={rmax:.4f} k={k} threshold={threshold:.4f}")
        results['json'] = json.dumps(environment_to_dict(match), indent=2)
        results['cluster_time'] = time.time() - t0
        results['success'] = True
    except MatchEnvError as e:
        logger.error("Analysis failed: %s", e)
        results['error'] = str(e)
    return results


def run_motif(box, points: np.ndarray, rmax: float, k: int, threshold: float,
              hard_r: bool, motif_vecs: np.ndarray) -> Dict:
    results = {'success': False, 'error': None}
    try:
        match = MatchEnv(box, rmax=rmax, k=k)
        match.match_motif(points, motif_vecs, threshold, hard_r=hard_r)
        results['matches'] = match.motif_matches()
        results['motif_environment'] = match.motif_environment()
        results['success'] = True
    except MatchEnvError as e:
        logger.error("Motif matching failed: %s", e)
        results['error'] = str(e)
    return results


def main():
    st.title("🔬 Local Environment Explorer")
    st.markdown("Group particles whose neighbor shells match, or test them against an ideal motif")

    if 'results' not in st.session_state:
        st.session_state.results = None
    if 'motif_results' not in st.session_state:
        st.session_state.motif_results = None

    with st.sidebar:
        st.header("🧱 Configuration")
        crystal = st.selectbox("Crystal", list(BRAVAIS_BASIS.keys()),
                               format_func=lambda c: CRYSTAL_LABELS.get(c, c), index=2)
        a = st.number_input("Lattice parameter a", min_value=0.1, max_value=20.0, value=1.0, step=0.1)
        reps = st.slider("Unit cells per axis", min_value=2, max_value=6, value=3)
        sigma = st.number_input("Thermal noise σ (in units of a)", min_value=0.0, max_value=0.2,
                                value=0.0, step=0.005, format="%.3f") * a
        n_vacancies = st.number_input("Vacancies", min_value=0, max_value=50, value=0)
        seed = st.number_input("Random seed", min_value=0, max_value=10_000, value=0)

        nn_factor, default_motif = NEAREST_NEIGHBOR[crystal]
        nn_distance = nn_factor * a

        st.header("⚙️ Matching")
        k = st.slider("Neighbors k", min_value=1, max_value=MAX_NUM_NEIGHBORS,
                      value=min(len(get_motif(default_motif)), MAX_NUM_NEIGHBORS))
        rmax = st.number_input("rmax", min_value=0.01, max_value=50.0,
                               value=float(round(1.15 * nn_distance, 3)), step=0.01)
        threshold = st.slider("Threshold (× rmax²)", min_value=0.0,
                              max_value=MAX_THRESHOLD_RATIO - 0.01, value=0.1, step=0.01)
        hard_r = st.checkbox("Hard cutoff at rmax", value=False)
        n_workers = st.slider("Worker threads", min_value=1, max_value=8, value=1)
        motif = st.selectbox("Reference motif", available_motifs(),
                             index=available_motifs().index(default_motif),
                             format_func=lambda m: MOTIF_LABELS.get(m, m))

    box, points = generate_configuration(crystal, a, reps, sigma, int(n_vacancies), int(seed))

    col1, col2 = st.columns([1, 1])
    with col1:
        if st.button("▶️ Cluster environments", use_container_width=True):
            with st.spinner(f"Comparing {len(points)} environments..."):
                st.session_state.results = run_analysis(box, points, rmax, k, threshold,
                                                        hard_r, n_workers)
    with col2:
        if st.button("🎯 Match motif", use_container_width=True):
            motif_vecs = get_motif(motif, scale=nn_distance)
            with st.spinner("Matching motif..."):
                st.session_state.motif_results = run_motif(box, points, rmax, k, threshold,
                                                           hard_r, motif_vecs)
                st.session_state.motif_results['motif_vectors'] = motif_vecs

    results = st.session_state.results
    if results is not None:
        if not results['success']:
            st.error(results['error'])
        else:
            st.header("📊 Clusters")
            mcols = st.columns(3)
            with mcols[0]:
                metric_card("Particles", str(len(points)))
            with mcols[1]:
                metric_card("Clusters", str(len(results['environments'])))
            with mcols[2]:
                metric_card("Time", f"{results['cluster_time']:.2f} s")

            if len(results['labels']) == len(points):
                st.plotly_chart(generate_cluster_figure(box, points, results['labels'],
                                                        title=CRYSTAL_LABELS.get(crystal, crystal)),
                                use_container_width=True)
            st.dataframe(results['summary'], use_container_width=True)

            with st.expander("Averaged environments"):
                top = results['summary']['cluster'].head(6).tolist()
                ecols = st.columns(min(3, max(1, len(top))))
                for n, label in enumerate(top):
                    with ecols[n % len(ecols)]:
                        st.plotly_chart(generate_environment_figure(results['environments'][label],
                                                                    title=f"Cluster {label}"),
                                        use_container_width=True)

            with st.expander("Per-particle table"):
                st.dataframe(results['particles'], use_container_width=True)

            dcols = st.columns(3)
            with dcols[0]:
                st.download_button("Download labels (CSV)", results['csv'], file_name="clusters.csv")
            with dcols[1]:
                st.download_button("Download XYZ", results['xyz'], file_name="clusters.xyz")
            with dcols[2]:
                st.download_button("Download environments (JSON)", results['json'],
                                   file_name="environments.json")

    motif_results = st.session_state.motif_results
    if motif_results is not None:
        st.header("🎯 Motif matching")
        if not motif_results['success']:
            st.error(motif_results['error'])
        else:
            matches = motif_results['matches']
            st.metric("Particles matching motif", f"{int(matches.sum())} / {len(matches)}")
            if len(matches) == len(points):
                st.plotly_chart(generate_cluster_figure(box, points, (~matches).astype(int),
                                                        title="Cluster 0 = matches motif"),
                                use_container_width=True)
            st.plotly_chart(generate_environment_figure(motif_results['motif_environment'],
                                                        reference=motif_results['motif_vectors'],
                                                        title="Average matched environment vs motif"),
                            use_container_width=True)
            st.dataframe(pd.DataFrame({'particle': np.arange(len(matches)), 'matches_motif': matches}),
                         use_container_width=True)


if __name__ == "__main__":
    main()
