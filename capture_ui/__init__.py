# UI: capture window and panels
