"""Speech synthesis layer for the podcast pipeline.

Entry points are `speech_client.synthesize` / `speech_client.synthesize_script`
and the FastAPI app in `main`.
"""
