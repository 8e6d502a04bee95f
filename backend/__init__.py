"""
Taskline Backend - HTTP surface for the Gantt view.

This package provides a FastAPI backend that turns task data fetched from
the task API into hierarchy forests and Gantt projections for the frontend.
"""
