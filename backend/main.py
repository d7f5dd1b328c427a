"""Entry point for the commit history ingestion FastAPI application."""

import os
import shutil

# Configure GitPython (and the async git runner, which reads the same
# variable) to use the git executable found on PATH.
git_path = os.getenv("GIT_PYTHON_GIT_EXECUTABLE") or shutil.which("git")
if not git_path:
    # Try common Git installation paths on Windows
    common_paths = [
        r"C:\Program Files\Git\cmd\git.exe",
        r"C:\Program Files (x86)\Git\cmd\git.exe",
    ]
    for path in common_paths:
        if os.path.exists(path):
            git_path = path
            break

if git_path:
    os.environ["GIT_PYTHON_GIT_EXECUTABLE"] = git_path
    import git
    git.refresh(path=git_path)
else:
    raise RuntimeError(
        "Git executable not found. Please install Git from https://git-scm.com/downloads "
        "or set GIT_PYTHON_GIT_EXECUTABLE environment variable to the path of the git binary"
    )

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router as api_router

app = FastAPI(title="Commit History Ingestion Backend", version="0.1.0")

# The dashboard runs on its own dev server and calls this API directly.
origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
async def root() -> dict:
    """
    Simple heartbeat endpoint to confirm the API is online.

    Returns:
        dict: App metadata payload.
    """
    return {"status": "ok", "app": "Commit History Ingestion Backend"}
