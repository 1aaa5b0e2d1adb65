"""
Workers Package
Entry points run outside the API process (python -m leadflow.workers.schedule_sweep)
"""
