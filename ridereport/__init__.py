"""
RideReport

Decodes FIT ride files and analyzes them:
- Power metrics (NP, IF, TSS, peak power, zones)
- Pacing, pacing errors, fatigue and a 0-100 performance score
- Pacing plan comparison and ride insights

`analyze_ride` runs the analysis in-process; the Celery tasks in
`ridereport.tasks` run it on a worker.
"""

from .analysis import analyze_ride, RideReport

__version__ = "0.1.0"


# Celery is only imported when a worker or caller asks for the app
def get_celery_app():
    from .celery_app import app
    return app


__all__ = ['analyze_ride', 'get_celery_app', 'RideReport', '__version__']
