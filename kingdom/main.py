from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from contextlib import contextmanager
from typing import List, Optional
import logging
import os
from pathlib import Path

from kingdom.database import engine, SessionLocal, Base
from kingdom import models  # Import all models to register them with Base
from kingdom.schemas import (
    TaskCreate, TaskUpdate, TaskRecord, TaskCompletionResponse,
    RuleCreate, RuleUpdate, RuleRecord, RuleViolationResponse,
    RewardCreate, RewardUpdate, RewardRecord,
    PunishmentCreate, PunishmentUpdate, PunishmentRecord, PunishmentHistoryItem,
    ProfilePoints, Notice,
)
from kingdom.exceptions import (
    KingdomException, RecordNotFoundException, RemoteStoreException, FetchTimeoutException,
)
from kingdom.middleware.auth import verify_api_key
from kingdom.mirror import LocalMirror
from kingdom.services.registry import DataServices, build_services
from kingdom.services.scheduler_service import start_scheduler, stop_scheduler
from kingdom.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, CORS_ALLOWED_ORIGINS,
)

LOG_DIR = os.getenv("KINGDOM_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("KINGDOM_LOG_FILE", "app.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("kingdom")

# Create database tables
Base.metadata.create_all(bind=engine)

_services: Optional[DataServices] = None


def get_services() -> DataServices:
    """Process-wide data services sharing one cache and mirror"""
    global _services
    if _services is None:
        _services = build_services(SessionLocal, LocalMirror.from_path())
    return _services


@contextmanager
def domain_errors():
    """Translate data-layer exceptions into HTTP errors"""
    try:
        yield
    except RecordNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (RemoteStoreException, FetchTimeoutException) as e:
        raise HTTPException(status_code=502, detail=str(e))
    except KingdomException as e:
        raise HTTPException(status_code=400, detail=str(e))


app = FastAPI(
    title="Kingdom API",
    description="Tasks, rules, rewards and punishments with points",
    version="1.0.0"
)

cors_origins = os.getenv("KINGDOM_CORS_ORIGINS")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins.split(",") if cors_origins else CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Startup event
@app.on_event("startup")
async def startup_event():
    logger.info(f"Kingdom API started. Logging to: {log_path}")
    start_scheduler(get_services())

# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Kingdom API")
    stop_scheduler()
    if _services is not None:
        _services.shutdown()

# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Kingdom API", "status": "active"}

# ===== TASKS =====

@app.get("/api/tasks", response_model=List[TaskRecord], dependencies=[Depends(verify_api_key)])
def get_tasks(services: DataServices = Depends(get_services)):
    """Get all tasks, newest first"""
    with domain_errors():
        return services.tasks.list()

@app.get("/api/tasks/due-today", response_model=List[TaskRecord], dependencies=[Depends(verify_api_key)])
def get_tasks_due_today(services: DataServices = Depends(get_services)):
    """Get tasks scheduled for today"""
    with domain_errors():
        return services.tasks.due_today()

@app.post("/api/tasks", response_model=TaskRecord, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def create_task(task: TaskCreate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.tasks.create(task)

@app.put("/api/tasks/{task_id}", response_model=TaskRecord, dependencies=[Depends(verify_api_key)])
def update_task(task_id: str, task_update: TaskUpdate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.tasks.update(task_id, task_update)

@app.delete("/api/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
def delete_task(task_id: str, services: DataServices = Depends(get_services)):
    with domain_errors():
        services.tasks.delete(task_id)

@app.post("/api/tasks/{task_id}/complete", response_model=TaskRecord, dependencies=[Depends(verify_api_key)])
def complete_task(task_id: str, user_id: Optional[str] = None, services: DataServices = Depends(get_services)):
    """Complete a task once for today and award its points"""
    with domain_errors():
        return services.tasks.complete(task_id, user_id)

@app.post("/api/tasks/{task_id}/uncomplete", response_model=TaskRecord, dependencies=[Depends(verify_api_key)])
def uncomplete_task(task_id: str, user_id: Optional[str] = None, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.tasks.uncomplete(task_id, user_id)

@app.get("/api/tasks/{task_id}/completions", response_model=List[TaskCompletionResponse], dependencies=[Depends(verify_api_key)])
def get_task_completions(task_id: str, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.tasks.completions(task_id)

# ===== RULES =====

@app.get("/api/rules", response_model=List[RuleRecord], dependencies=[Depends(verify_api_key)])
def get_rules(services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rules.list()

@app.get("/api/rules/violations", response_model=List[RuleViolationResponse], dependencies=[Depends(verify_api_key)])
def get_rule_violations(rule_id: Optional[str] = None, services: DataServices = Depends(get_services)):
    """Get this week's rule violations"""
    with domain_errors():
        return services.rules.violations(rule_id)

@app.post("/api/rules", response_model=RuleRecord, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def create_rule(rule: RuleCreate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rules.create(rule)

@app.put("/api/rules/{rule_id}", response_model=RuleRecord, dependencies=[Depends(verify_api_key)])
def update_rule(rule_id: str, rule_update: RuleUpdate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rules.update(rule_id, rule_update)

@app.delete("/api/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
def delete_rule(rule_id: str, services: DataServices = Depends(get_services)):
    with domain_errors():
        services.rules.delete(rule_id)

@app.post("/api/rules/{rule_id}/violations", response_model=RuleViolationResponse, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def record_rule_violation(rule_id: str, user_id: Optional[str] = None, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rules.record_violation(rule_id, user_id)

# ===== REWARDS =====

@app.get("/api/rewards", response_model=List[RewardRecord], dependencies=[Depends(verify_api_key)])
def get_rewards(services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rewards.list()

@app.post("/api/rewards", response_model=RewardRecord, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def create_reward(reward: RewardCreate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rewards.create(reward)

@app.put("/api/rewards/{reward_id}", response_model=RewardRecord, dependencies=[Depends(verify_api_key)])
def update_reward(reward_id: str, reward_update: RewardUpdate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.rewards.update(reward_id, reward_update)

@app.delete("/api/rewards/{reward_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
def delete_reward(reward_id: str, services: DataServices = Depends(get_services)):
    with domain_errors():
        services.rewards.delete(reward_id)

@app.post("/api/rewards/{reward_id}/buy", dependencies=[Depends(verify_api_key)])
def buy_reward(reward_id: str, user_id: str, services: DataServices = Depends(get_services)):
    """Buy one unit of a reward with the profile's points"""
    with domain_errors():
        reward, balance = services.rewards.buy(reward_id, user_id)
        return {"reward": reward, "points": balance}

# ===== PUNISHMENTS =====

@app.get("/api/punishments", response_model=List[PunishmentRecord], dependencies=[Depends(verify_api_key)])
def get_punishments(services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.punishments.list()

@app.get("/api/punishments/history", response_model=List[PunishmentHistoryItem], dependencies=[Depends(verify_api_key)])
def get_punishment_history(services: DataServices = Depends(get_services)):
    """Get punishments applied this week"""
    with domain_errors():
        return services.punishments.history()

@app.get("/api/punishments/random", response_model=Optional[PunishmentRecord], dependencies=[Depends(verify_api_key)])
def get_random_punishment(services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.punishments.random_punishment()

@app.post("/api/punishments", response_model=PunishmentRecord, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def create_punishment(punishment: PunishmentCreate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.punishments.create(punishment)

@app.put("/api/punishments/{punishment_id}", response_model=PunishmentRecord, dependencies=[Depends(verify_api_key)])
def update_punishment(punishment_id: str, punishment_update: PunishmentUpdate, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.punishments.update(punishment_id, punishment_update)

@app.delete("/api/punishments/{punishment_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
def delete_punishment(punishment_id: str, services: DataServices = Depends(get_services)):
    """Delete a punishment together with its history"""
    with domain_errors():
        services.punishments.delete(punishment_id)

@app.post("/api/punishments/{punishment_id}/apply", response_model=PunishmentHistoryItem, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
def apply_punishment(punishment_id: str, user_id: Optional[str] = None, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.punishments.apply(punishment_id, user_id)

# ===== POINTS / NOTICES =====

@app.get("/api/profiles/{profile_id}/points", response_model=ProfilePoints, dependencies=[Depends(verify_api_key)])
def get_profile_points(profile_id: str, services: DataServices = Depends(get_services)):
    with domain_errors():
        return services.points.get_points(profile_id)

@app.get("/api/notices", response_model=List[Notice], dependencies=[Depends(verify_api_key)])
def get_notices(level: Optional[str] = None, services: DataServices = Depends(get_services)):
    """Get recent notices, newest first"""
    return services.ctx.notifier.recent(level)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("kingdom.main:app", host="0.0.0.0", port=8000, reload=False)
