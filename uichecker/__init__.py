"""
UI Checker: Visual Regression Grading for Front-End Projects

Serves a reference solution and a batch of student projects, screenshots
each of them in a headless browser and scores every submission by pixel
similarity against the reference.
"""

__version__ = "0.1.0"
