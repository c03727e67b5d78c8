# ==============================================================================
# CLI Command Modules
# ==============================================================================
"""
Typer command implementations, registered on the app in visitortrack/app.py.
"""
