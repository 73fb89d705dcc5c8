"""
🫁 Générateur de Rapport TCP — Streamlit App
============================================
Upload XML → type de sport → zones, graphiques et recommandations.
"""

import pandas as pd
import streamlit as st

from config import DEFAULT_CONFIG, SPORT_ENDURANCE, SPORT_OTHER
from orchestrator import CPET_Orchestrator, ReportBundle, format_bundle
from results import ErrorKind
from training_zones import ZONE_CHART_COLORS, zone_label

SPORT_CHOICES = {
    SPORT_ENDURANCE: "Endurance (5 zones)",
    SPORT_OTHER: "Autres sports (3 zones)",
}

# ════════════════════════════════════════════════════════
# PAGE SETUP
# ════════════════════════════════════════════════════════

st.set_page_config(
    page_title="🫁 Rapport TCP",
    page_icon="🫁",
    layout="wide",
)

orchestrator = CPET_Orchestrator(DEFAULT_CONFIG)


def show_error(err) -> None:
    if err.kind is ErrorKind.VALIDATION_FAILURE:
        st.error("❌ Erreur de validation — " + err.message)
    else:
        st.warning("⚠️ Erreur — " + err.message)
    if err.details:
        st.markdown("\n".join(f"- {d}" for d in err.details))


def render_zone_table(bundle: ReportBundle) -> None:
    label = "Puissance" if bundle.test_type.value == "bike" else "Vitesse"
    df = pd.DataFrame(
        [(r.zone, r.hr, r.intensity, r.description) for r in bundle.zone_rows],
        columns=["Zone", "FC (bpm)", label, "Détermination (seuils)"],
    )
    styled = df.style.apply(
        lambda row: [f"background-color: {ZONE_CHART_COLORS[row['Zone']]}"] * len(row), axis=1)
    st.dataframe(styled, hide_index=True, use_container_width=True)
    st.caption(" · ".join(f"{z} {zone_label(z)}" for z in bundle.zones))


def render_series(bundle: ReportBundle) -> None:
    if bundle.series.empty:
        st.info("ℹ️ Aucune donnée d'effort à afficher.")
        return
    chart = bundle.series.set_index("time_s")
    c1, c2 = st.columns(2)
    with c1:
        st.markdown("**VO₂ (L/min)**")
        st.line_chart(chart[["vo2_s"]])
    with c2:
        st.markdown("**FC (bpm)**")
        st.line_chart(chart[["hr_s"]])
    seg = pd.DataFrame(
        [(s.zone, s.start_s, s.end_s, s.duration_s) for s in bundle.segments],
        columns=["Zone", "Début (s)", "Fin (s)", "Durée (s)"],
    )
    with st.expander("📋 Segments de zones"):
        st.dataframe(seg, hide_index=True, use_container_width=True)


# ════════════════════════════════════════════════════════
# SIDEBAR
# ════════════════════════════════════════════════════════

with st.sidebar:
    st.markdown("# 🫁 Rapport TCP")
    st.markdown("---")
    uploaded_file = st.file_uploader(
        "Fichier XML (export MetaSoft)",
        type=["xml"],
        help=f"Max {DEFAULT_CONFIG.max_file_size_mb:g}MB",
    )
    sport_type = st.selectbox(
        "Type de sport",
        list(SPORT_CHOICES),
        format_func=SPORT_CHOICES.get,
    )
    run = st.button("Générer le rapport", type="primary", use_container_width=True,
                    disabled=uploaded_file is None)

if run and uploaded_file is not None:
    upload = orchestrator.check_upload(uploaded_file.name, uploaded_file.size)
    if not upload.ok:
        show_error(upload)
        st.stop()
    with st.spinner("Validation en cours..."):
        result = orchestrator.process_text(uploaded_file.getvalue().decode("utf-8", errors="replace"),
                                           sport_type)
    if not result.ok:
        st.session_state.pop("tcp_bundle", None)
        show_error(result)
        st.stop()
    st.session_state["tcp_bundle"] = result.value

# ═══════════════════════════════════════════════════════════════
# RENDER REPORT (re-zoned when the sport type changes)
# ═══════════════════════════════════════════════════════════════
if "tcp_bundle" in st.session_state:
    bundle = st.session_state["tcp_bundle"]
    if bundle.sport_type != sport_type:
        bundle = orchestrator.rezone(bundle, sport_type)
        st.session_state["tcp_bundle"] = bundle

    st.markdown("## Compte rendu de test d'effort")
    st.text("\n".join(format_bundle(bundle)[:4]))
    st.markdown("### Zones d'entraînement personnalisées")
    render_zone_table(bundle)
    st.markdown("### VO₂ et FC avec seuils et zones")
    render_series(bundle)

    rec = bundle.recommendation
    st.markdown("### Recommandations")
    for text in (rec.analysis, rec.priority, rec.complementary, rec.high_intensity):
        st.markdown(f"- {text}")
    if rec.warning:
        st.warning(rec.warning)
    st.caption(rec.follow_up)
else:
    st.info("📄 Glissez votre fichier XML dans la barre latérale puis cliquez sur « Générer le rapport ».")
