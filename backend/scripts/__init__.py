"""
Maintenance scripts

    python -m scripts.seed_data                     # sample users and workflows
    python -m scripts.validate_workflow IT_INCIDENT # structural report
"""
