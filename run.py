"""
RUN SCRIPT - Start the Zeno server
==================================

PURPOSE:
  Single entry point to start the backend relay.

WHAT IT DOES:
  - Imports the FastAPI app from zeno.main.
  - Runs it with uvicorn on host 0.0.0.0 and port 8000.
  - reload=True restarts the server when Python files change (development).

USAGE:
  python run.py

  Then talk to it with the console client (python console.py) or any HTTP client.
  API docs: http://localhost:8000/docs

NOTE:
  Set OPENROUTER_API_KEY (chat), HUGGINGFACE_API_KEY (images) and optionally
  TAVILY_API_KEY (web search) in .env before running.
"""

import uvicorn

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "zeno.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
