"""
Service: FastAPI front end for the anchor and paper pipelines.
"""
