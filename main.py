# main.py (root of repo)

from moodify.main import app  # the FastAPI instance wrapping a MoodifySession

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
