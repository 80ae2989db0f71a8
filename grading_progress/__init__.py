"""
Grading Progress Service

Tracks OCR/grading progress of uploaded student submissions against the
grading backend: batch uploads, status polling, progress figures and score
analytics, served to the frontend over a small FastAPI app.
"""
