# ==========================================
# IMPORT LIBRARIES
# ==========================================
# Streamlit: Web framework for the interactive dashboard
# NumPy / Pandas: Arrays and result tables
# Plotly: Interactive charts
# cohort_cea: The simulation and analysis engine (no UI code lives there)

import logging

import streamlit as st
import numpy as np
import pandas as pd
import plotly.graph_objects as go

from cohort_cea import (
    BASE_PARAMS,
    DEFAULT_PSA_CATALOGUE,
    STATE_NAMES,
    ModelError,
    ceac,
    ceaf,
    evpi,
    expected_loss,
    run_base_case,
    run_owsa,
    run_psa,
    tornado,
    wtp_grid,
)
from cohort_cea.config import DEFAULT_N_SIM, DEFAULT_SEED, DEFAULT_WTP, configure_logging

configure_logging(logging.INFO)

# Colour per strategy, in declaration order
STRATEGY_COLORS = ['grey', 'teal', 'darkorange', 'purple']

# Parameters varied in the one-way sensitivity analysis: (low, high)
OWSA_RANGES = {
    'c_trta': (6000, 18000),
    'c_trtb': (6500, 19500),
    'u_trta': (0.85, 1.0),
    'hr_s1s2_trtb': (0.4, 0.8),
    'r_s1s2': (0.05, 0.15),
    'c_s2': (10000, 20000),
    'd_c': (0.0, 0.06),
}

# ==========================================
# PAGE SETUP & SESSION STATE
# ==========================================
# Session state keeps results across reruns when inputs change

st.set_page_config(page_title="Sick-Sicker CEA", layout="wide")
st.title("Sick-Sicker Cohort Model: Cost-Effectiveness Analysis")

if 'results' not in st.session_state:
    st.session_state.results = None      # Deterministic base case
if 'psa_results' not in st.session_state:
    st.session_state.psa_results = None  # Probabilistic sensitivity analysis
if 'owsa_results' not in st.session_state:
    st.session_state.owsa_results = None # One-way sensitivity analysis

# ==========================================
# SIDEBAR: INPUT CONTROLS
# ==========================================

st.sidebar.header("1. Horizon & Discounting")

n_cycles = st.sidebar.slider(
    "Time Horizon (Cycles)",
    10, 100, BASE_PARAMS.n_cycles,
    help="Number of annual cycles. Everyone starts Healthy at age 25 in the reference model."
)

discount_c = st.sidebar.slider("Cost Discount Rate (%)", 0.0, 10.0, BASE_PARAMS.d_c * 100, 0.5) / 100.0
discount_e = st.sidebar.slider("QALY Discount Rate (%)", 0.0, 10.0, BASE_PARAMS.d_e * 100, 0.5) / 100.0

wcc_label = st.sidebar.selectbox(
    "Within-Cycle Correction",
    ["Simpson 1/3 (3/8 tail for odd horizons)", "Simpson 1/3 (even horizons only)", "Half-cycle (trapezoid)", "None"],
    index=0,
    help="Numerical integration applied to the trace before summing rewards"
)
wcc_map = {
    "Simpson 1/3 (3/8 tail for odd horizons)": "simpson-composite",
    "Simpson 1/3 (even horizons only)": "simpson",
    "Half-cycle (trapezoid)": "trapezoid",
    "None": "none",
}
wcc_method = wcc_map[wcc_label]

st.sidebar.divider()

st.sidebar.header("2. Treatments")

c_trta = st.sidebar.number_input("Treatment A Cost ($/year)", value=BASE_PARAMS.c_trta, min_value=0.0, step=500.0)
c_trtb = st.sidebar.number_input("Treatment B Cost ($/year)", value=BASE_PARAMS.c_trtb, min_value=0.0, step=500.0)
u_trta = st.sidebar.slider(
    "Sick1 Utility on Treatment A", 0.0, 1.0, BASE_PARAMS.u_trta, 0.01,
    help="Treatment A improves quality of life in Sick1 but does not change progression"
)
hr_trtb = st.sidebar.slider(
    "Treatment B Hazard Ratio (Sick1 → Sick2)", 0.1, 1.0, BASE_PARAMS.hr_s1s2_trtb, 0.05,
    help="Treatment B slows progression; 0.6 = 40% lower progression rate"
)

params = BASE_PARAMS.replace(
    n_cycles=n_cycles,
    d_c=discount_c,
    d_e=discount_e,
    c_trta=c_trta,
    c_trtb=c_trtb,
    u_trta=u_trta,
    hr_s1s2_trtb=hr_trtb,
)

st.sidebar.divider()

st.sidebar.header("3. Willingness to Pay")
wtp_lower, wtp_upper, wtp_step = DEFAULT_WTP
wtp_max = st.sidebar.number_input("Maximum WTP ($/QALY)", value=wtp_upper, min_value=wtp_step, step=wtp_step)
wtp_values = wtp_grid(wtp_lower, wtp_max, wtp_step)
wtp_point = st.sidebar.number_input("Decision Threshold ($/QALY)", value=50000, min_value=0, step=5000)

# ==========================================
# SENSITIVITY ANALYSIS SECTION (EXPANDABLE)
# ==========================================
with st.sidebar.expander("Sensitivity Analysis"):
    st.caption("Resample uncertain parameters from their distributions and re-run every strategy.")

    n_sim = st.number_input("PSA Samples", value=DEFAULT_N_SIM, min_value=10, max_value=10000, step=100, key="n_sim")
    seed = st.number_input("Random Seed", value=DEFAULT_SEED, min_value=0, step=1, key="seed")

    if st.button("Run PSA Simulation", key="run_psa"):
        progress_bar = st.progress(0)
        try:
            st.session_state.psa_results = run_psa(
                base=params,
                catalogue=DEFAULT_PSA_CATALOGUE,
                n_sim=int(n_sim),
                seed=int(seed),
                method=wcc_method,
                progress=lambda done, total: progress_bar.progress(done / total),
            )
        except ModelError as exc:
            st.session_state.psa_results = None
            st.error(f"PSA failed: {exc}")

    if st.button("Run One-Way Sensitivity", key="run_owsa"):
        try:
            st.session_state.owsa_results = run_owsa(OWSA_RANGES, base=params, n_points=5,
                                                     wtp=wtp_point, method=wcc_method)
        except ModelError as exc:
            st.session_state.owsa_results = None
            st.error(f"One-way sensitivity failed: {exc}")

# ==========================================
# MAIN ANALYSIS EXECUTION
# ==========================================

if st.button("Run Analysis", type="primary", key="run_base"):
    try:
        st.session_state.results = run_base_case(params, method=wcc_method)
    except ModelError as exc:
        st.session_state.results = None
        st.error(f"Base case failed: {exc}")
    # Reset sensitivity results when the base case changes
    st.session_state.psa_results = None
    st.session_state.owsa_results = None

# ==========================================
# DISPLAY DETERMINISTIC RESULTS
# ==========================================

if st.session_state.results:
    res = st.session_state.results
    df_icer = res.icer_frame()
    df_out = res.outcome_frame()

    st.subheader("Base Case")

    # Best strategy at the decision threshold (highest NMB)
    df_out['NMB'] = df_out['Effect'] * wtp_point - df_out['Cost']
    best = df_out.loc[df_out['NMB'].idxmax()]

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Preferred Strategy", best['Strategy'], help=f"Highest net monetary benefit at ${wtp_point:,}/QALY")
    with col2:
        st.metric("Discounted Cost", f"$ {best['Cost']:,.0f}")
    with col3:
        st.metric("Discounted QALYs", f"{best['Effect']:,.3f}")

    st.dataframe(
        df_icer.style.format({
            "Cost": "{:,.0f}",
            "Effect": "{:,.3f}",
            "Inc_Cost": "{:,.0f}",
            "Inc_Effect": "{:,.3f}",
            "ICER": "{:,.0f}",
        }, na_rep="-"),
        use_container_width=True
    )

    # ==========================================
    # VISUALIZATION: COST-EFFECTIVENESS FRONTIER
    # ==========================================
    on_frontier = df_icer[df_icer['Status'] == "On frontier"]

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=df_icer['Effect'],
        y=df_icer['Cost'],
        mode='markers+text',
        text=df_icer['Strategy'],
        textposition='top center',
        marker=dict(size=12, color='teal'),
        name='Strategies',
        hovertemplate='<b>QALY:</b> %{x:,.3f}<br><b>Cost:</b> $%{y:,.0f}<extra></extra>'
    ))
    fig.add_trace(go.Scatter(
        x=on_frontier['Effect'],
        y=on_frontier['Cost'],
        mode='lines',
        line=dict(color='red', dash='dash', width=2),
        name='Efficiency Frontier'
    ))
    fig.update_layout(
        title="Cost-Effectiveness Plane",
        xaxis_title="Discounted QALYs",
        yaxis_title="Discounted Cost ($)",
        height=500
    )
    st.plotly_chart(fig, use_container_width=True)

    # ==========================================
    # COHORT TRACE
    # ==========================================
    st.subheader("Cohort Trace")

    trace_names = [s.value for s in res.traces]
    trace_strategy = st.selectbox("Strategy", trace_names, key="trace_strategy")
    df_trace = list(res.traces.values())[trace_names.index(trace_strategy)].to_frame()

    fig = go.Figure()
    for state in STATE_NAMES:
        fig.add_trace(go.Scatter(x=df_trace.index, y=df_trace[state], mode='lines', name=state))
    fig.update_layout(
        title=f"State Occupancy: {trace_strategy}",
        xaxis_title="Cycle",
        yaxis_title="Proportion of Cohort",
        height=450
    )
    st.plotly_chart(fig, use_container_width=True)

# ==========================================
# DISPLAY PROBABILISTIC SENSITIVITY ANALYSIS (PSA) RESULTS
# ==========================================

if st.session_state.psa_results is not None:
    psa = st.session_state.psa_results
    st.divider()
    st.subheader(f"Probabilistic Sensitivity Analysis ({psa.n_sim:,} samples)")

    st.dataframe(
        psa.summary().style.format({
            "Cost": "{:,.0f}", "Effect": "{:,.3f}", "Cost_SD": "{:,.0f}", "Effect_SD": "{:,.3f}"
        }),
        use_container_width=True
    )

    # Cost-effectiveness plane: one cloud per strategy
    fig = go.Figure()
    for name, color in zip(psa.strategies, STRATEGY_COLORS):
        fig.add_trace(go.Scatter(
            x=psa.effects[name],
            y=psa.costs[name],
            mode='markers',
            marker=dict(color=color, opacity=0.4, size=5),
            name=name
        ))
    fig.update_layout(
        title="Cost-Effectiveness Plane (Uncertainty Analysis)",
        xaxis_title="Discounted QALYs",
        yaxis_title="Discounted Cost ($)",
        height=500
    )
    st.plotly_chart(fig, use_container_width=True)

    df_ceac = ceac(psa, wtp_values)
    df_ceaf = ceaf(psa, wtp_values)
    df_elc = expected_loss(psa, wtp_values)
    s_evpi = evpi(psa, wtp_values)

    col1, col2 = st.columns(2)

    # ==========================================
    # ACCEPTABILITY CURVES + FRONTIER
    # ==========================================
    with col1:
        fig = go.Figure()
        for name, color in zip(psa.strategies, STRATEGY_COLORS):
            fig.add_trace(go.Scatter(x=df_ceac.index, y=df_ceac[name], mode='lines',
                                     line=dict(color=color), name=name))
        fig.add_trace(go.Scatter(
            x=df_ceaf.index,
            y=df_ceaf['Probability'],
            mode='markers',
            marker=dict(color='black', size=6, symbol='circle-open'),
            name='Frontier (CEAF)',
            text=df_ceaf['Strategy'],
            hovertemplate='<b>%{text}</b><br>WTP: $%{x:,.0f}<br>P: %{y:.2f}<extra></extra>'
        ))
        fig.update_layout(
            title="Acceptability Curves (CEAC / CEAF)",
            xaxis_title="Willingness to Pay ($/QALY)",
            yaxis_title="Probability Cost-Effective",
            yaxis_range=[0, 1],
            height=450
        )
        st.plotly_chart(fig, use_container_width=True)

    # ==========================================
    # EXPECTED LOSS CURVES + EVPI
    # ==========================================
    with col2:
        fig = go.Figure()
        for name, color in zip(psa.strategies, STRATEGY_COLORS):
            fig.add_trace(go.Scatter(x=df_elc.index, y=df_elc[name], mode='lines',
                                     line=dict(color=color), name=name))
        fig.add_trace(go.Scatter(x=s_evpi.index, y=s_evpi, mode='lines',
                                 line=dict(color='black', dash='dot'), name='EVPI'))
        fig.update_layout(
            title="Expected Loss Curves",
            xaxis_title="Willingness to Pay ($/QALY)",
            yaxis_title="Expected Loss ($)",
            height=450
        )
        st.plotly_chart(fig, use_container_width=True)

    idx = int(np.argmin(np.abs(df_ceaf.index.to_numpy() - wtp_point)))
    st.info(
        f"At ${df_ceaf.index[idx]:,.0f}/QALY, **{df_ceaf['Strategy'].iloc[idx]}** has the highest expected "
        f"net monetary benefit and is optimal in {df_ceaf['Probability'].iloc[idx]:.0%} of samples. "
        f"EVPI: ${s_evpi.iloc[idx]:,.0f} per person."
    )

# ==========================================
# DISPLAY ONE-WAY SENSITIVITY (TORNADO)
# ==========================================

if st.session_state.owsa_results is not None:
    st.divider()
    st.subheader("One-Way Sensitivity Analysis")

    df_owsa = st.session_state.owsa_results
    tornado_strategy = st.selectbox("Strategy", list(pd.unique(df_owsa['Strategy'])), index=1, key="tornado_strategy")
    bars = tornado(df_owsa, tornado_strategy, outcome='NMB')

    # Centre the bars on the base-case NMB of the selected strategy
    base_res = run_base_case(params, method=wcc_method)
    base_out = next(o for o in base_res.outcomes if o.strategy == tornado_strategy)
    base_nmb = base_out.effect * wtp_point - base_out.cost

    fig = go.Figure()
    fig.add_trace(go.Bar(
        y=bars['Parameter'],
        x=bars['High'] - bars['Low'],
        base=bars['Low'],
        orientation='h',
        marker_color='teal',
        name='NMB range'
    ))
    fig.add_vline(x=base_nmb, line_width=1, line_color="black", line_dash="dot")
    fig.update_layout(
        title=f"Tornado Diagram: NMB of {tornado_strategy} at ${wtp_point:,}/QALY",
        xaxis_title="Net Monetary Benefit ($)",
        yaxis=dict(autorange='reversed'),
        height=450
    )
    st.plotly_chart(fig, use_container_width=True)
