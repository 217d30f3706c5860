"""Authorization gateway for the school monitoring dashboard."""
