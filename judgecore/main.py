import uuid
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from sqlalchemy.engine import make_url

from judgecore.config import JudgeSettings, get_settings
from judgecore.db import PENDING, SubmissionStore
from judgecore.judge import Judge, JudgePool
from judgecore.log import setup_logging
from judgecore.models import ExecutionRequest, Language


def _ensure_sqlite_dir(database_url: str):
    url = make_url(database_url)
    if url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def create_app(settings: Optional[JudgeSettings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Online Judge")

    store = SubmissionStore(settings.database_url)
    pool = JudgePool(Judge(settings), settings.max_concurrent_judges)
    app.state.store = store
    app.state.pool = pool

    @app.on_event("startup")
    async def startup():
        _ensure_sqlite_dir(settings.database_url)
        await store.init_db()

    @app.on_event("shutdown")
    async def shutdown():
        await pool.join()
        await store.close()

    # ===== Submission APIs =====

    @app.post("/api/submit", status_code=202)
    async def submit(request: ExecutionRequest):
        """Accept code for judging; the verdict is polled later"""
        execution_id = uuid.uuid4().hex
        submission = await store.create(execution_id, request.language.value,
                                        request.source_code, len(request.test_cases))
        pool.submit(request, on_verdict=store.save_verdict, execution_id=execution_id)
        return {"submissionId": submission.id, "executionId": execution_id, "status": PENDING}

    @app.get("/api/submissions/{submission_id}")
    async def get_submission(submission_id: int):
        """Get submission status and result"""
        submission = await store.get(submission_id)
        if not submission:
            raise HTTPException(404, "Submission not found")
        return submission.to_dict()

    @app.get("/api/submissions")
    async def list_submissions(limit: int = 50):
        """List recent submissions"""
        return [s.to_dict() for s in await store.recent(limit)]

    # ===== Config APIs =====

    @app.get("/api/languages")
    async def get_languages():
        return {lang.value: {"compiled": lang.compiled} for lang in Language}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)
