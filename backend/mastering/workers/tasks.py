"""Celery task definitions."""

from celery import Celery, Task
from celery.schedules import crontab
from celery.signals import worker_init
import logging

from mastering.config import MasteringConfig, settings
from mastering.db.database import SessionLocal, create_tables
from mastering.logging_config import setup_logging as setup_app_logging
from mastering.models.audio import AudioStatus
from mastering.services.eq_engine import FFmpegEQEngine
from mastering.services.mastering import MasteringInvoker
from mastering.services.orchestrator import create_orchestrator
from mastering.services.persistence import AudioFileStore
from mastering.utils.storage import LocalStorage

# --- Logger Setup ---
# Ensure app-level logging is configured when a worker starts.
setup_app_logging()
logger = logging.getLogger(__name__)


# --- Celery Application Setup ---
celery_app = Celery(
    "mastering",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=['mastering.workers.tasks'],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # One job runs to completion per worker process before it takes another
    worker_prefetch_multiplier=1,
    beat_schedule={
        "cleanup-eq-temp-files": {
            "task": "cleanup_eq_temp_files_task",
            "schedule": crontab(minute=0),
        },
    },
)


@worker_init.connect
def _ensure_schema(**kwargs):
    # Creating tables is a no-op if they already exist (and very fast).
    try:
        create_tables()
    except Exception as exc:
        logger.exception(f"Could not create DB tables on worker start: {exc}")


# --- Base Task with failure bookkeeping ---
class BaseAudioTask(Task):
    """Base Celery Task with call/success/failure logging."""
    abstract = True

    def __call__(self, *args, **kwargs):
        logger.info(f"Task {self.name} [{self.request.id}] called with args: {args}, kwargs: {kwargs}")
        return super().__call__(*args, **kwargs)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}", exc_info=einfo)
        # The orchestrator marks files failed itself; this only catches files
        # left in PROCESSING when the task died before it could.
        audio_file_id = kwargs.get('audio_file_id') or (args[0] if args and isinstance(args[0], int) else None)
        if audio_file_id:
            store = AudioFileStore(SessionLocal)
            try:
                audio_file = store.get(audio_file_id)
                if audio_file.status == AudioStatus.PROCESSING:
                    store.update(
                        audio_file_id,
                        status=AudioStatus.FAILED,
                        error_message=f"Task failed: {str(exc)[:500]}",
                    )
            except Exception as db_exc:
                logger.error(f"DB error during task failure handling for audio file {audio_file_id}, task {self.name} [{task_id}]: {db_exc}", exc_info=True)
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Task {self.name} [{task_id}] completed successfully. Result: {retval}")
        super().on_success(retval, task_id, args, kwargs)


# --- Mastering Task ---
@celery_app.task(name="process_audio_file_task", base=BaseAudioTask, acks_late=True)
def process_audio_file_task(audio_file_id: int):
    logger.info(f"Starting mastering for audio_file_id: {audio_file_id}")
    orchestrator = create_orchestrator(MasteringConfig.from_settings(settings), session_factory=SessionLocal)
    outcome = orchestrator.run(audio_file_id)
    return outcome.as_dict()


# --- Maintenance Tasks ---
@celery_app.task(name="cleanup_eq_temp_files_task", base=BaseAudioTask)
def cleanup_eq_temp_files_task(hours: int | None = None):
    config = MasteringConfig.from_settings(settings)
    engine = FFmpegEQEngine(LocalStorage(), config)
    cleaned = engine.cleanup_temp_files(hours)
    stats = engine.stats()
    logger.info(f"EQ temp cleanup removed {cleaned} file(s); remaining: {stats['temp_files_count']} ({stats['temp_files_size_mb']} MB)")
    return {"cleaned": cleaned, **stats}


@celery_app.task(name="check_ai_mastering_task", base=BaseAudioTask)
def check_ai_mastering_task():
    report = MasteringInvoker(MasteringConfig.from_settings(settings)).health_check()
    if report["available"]:
        logger.info(f"AI mastering service check passed, version: {report['version']}")
    else:
        logger.error(f"AI mastering service check failed: {report['cli_path']} not available")
    return report


logger.info("Celery tasks defined and logging configured.")
