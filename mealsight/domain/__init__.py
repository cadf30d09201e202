"""Domain layer.

Pure logic and models for meal photo recognition, confidence
assessment, the correction learning loop and quality metrics.
No I/O lives here; storage and the vision model sit behind ports.
"""
