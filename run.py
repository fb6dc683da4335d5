"""Application entry point.

Runs the RecipeBook HTTP API with uvicorn.
"""

import uvicorn

if __name__ == "__main__":
    uvicorn.run("recipebook.main:app", host="localhost", port=8000, reload=True)
