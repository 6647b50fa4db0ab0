import json
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from judgecore.models import Verdict

Base = declarative_base()

PENDING = "Pending"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String(64), unique=True, nullable=False)
    language = Column(String(16), nullable=False)
    code = Column(Text, nullable=False)
    status = Column(String(32), default=PENDING)
    execution_time_ms = Column(Integer, default=0)
    memory_used_mb = Column(Float, default=0.0)
    test_cases_passed = Column(Integer, default=0)
    total_test_cases = Column(Integer, default=0)
    failed_test_case = Column(Text, nullable=True)  # JSON
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "executionId": self.execution_id,
            "language": self.language,
            "status": self.status,
            "executionTimeMs": self.execution_time_ms,
            "memoryUsedMb": self.memory_used_mb,
            "testCasesPassed": self.test_cases_passed,
            "totalTestCases": self.total_test_cases,
            "failedTestCase": json.loads(self.failed_test_case) if self.failed_test_case else None,
            "errorMessage": self.error_message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class SubmissionStore:
    """Persists submissions and their verdicts for polling callers"""

    def __init__(self, database_url: str):
        self.engine = create_async_engine(database_url, echo=False)
        self.async_session = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def init_db(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        await self.engine.dispose()

    async def create(self, execution_id: str, language: str, code: str, total_test_cases: int) -> Submission:
        async with self.async_session() as session:
            submission = Submission(execution_id=execution_id, language=language, code=code,
                                    status=PENDING, total_test_cases=total_test_cases)
            session.add(submission)
            await session.commit()
            await session.refresh(submission)
            return submission

    async def save_verdict(self, execution_id: str, verdict: Verdict):
        async with self.async_session() as session:
            result = await session.execute(select(Submission).where(Submission.execution_id == execution_id))
            submission = result.scalar_one()
            submission.status = verdict.status.value
            submission.execution_time_ms = verdict.execution_time_ms
            submission.memory_used_mb = verdict.memory_used_mb
            submission.test_cases_passed = verdict.test_cases_passed
            submission.total_test_cases = verdict.total_test_cases
            if verdict.failed_test_case is not None:
                submission.failed_test_case = json.dumps(
                    verdict.failed_test_case.model_dump(by_alias=True), ensure_ascii=False)
            submission.error_message = verdict.error_message
            await session.commit()

    async def get(self, submission_id: int) -> Optional[Submission]:
        async with self.async_session() as session:
            return await session.get(Submission, submission_id)

    async def recent(self, limit: int = 50) -> List[Submission]:
        async with self.async_session() as session:
            result = await session.execute(select(Submission).order_by(Submission.id.desc()).limit(limit))
            return list(result.scalars().all())
