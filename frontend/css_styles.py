# css_styles.py

# CSS string for Gradio styling
css = """
/* Medical disclaimer box */
#disclaimer {
    border: 1px solid #fcd34d; /* amber-300 */
    border-radius: 0.5rem;
    padding: 8px 12px;
    background-color: #fffbeb;
}

/* Dismissible error banner */
.error-banner-row {
    align-items: center;
}
.error-banner {
    border: 1px solid #fca5a5; /* red-300 */
    border-radius: 0.5rem;
    padding: 8px 12px;
    background-color: #fef2f2;
    color: #7f1d1d;
}

/* Analysis sections */
#analysis_display h2 {
    font-size: 1.6em;
    margin-top: 0.5em;
    margin-bottom: 0.5em;
    border-bottom: 1px solid #eee;
    padding-bottom: 0.2em;
}
#analysis_display h3 {
    font-size: 1.2em;
    margin-top: 1em;
    margin-bottom: 0.3em;
}
#analysis_display p {
    white-space: pre-wrap;
    line-height: 1.5;
}

#analyze_btn {
    font-size: 1.15em !important;
    font-weight: 600 !important;
    padding: 10px 16px !important;
    border-radius: 8px !important;
}
"""
