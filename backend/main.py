from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict, Optional
import logging

from ugc_eval import __version__
from ugc_eval.config import describe_active_models, get_app_config
from ugc_eval.monitoring import configure_logging, init_error_tracking
from ugc_eval.service import handle_evaluate_request

# Configure logging
configure_logging()
logger = logging.getLogger("api")

init_error_tracking(release=f"ugc-eval-api@{__version__}")

app = FastAPI(
    title="UGC Evaluation API",
    description="AI evaluation and settlement of creator video submissions",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_app_config().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Models ---

class EvaluateSubmissionRequest(BaseModel):
    submissionId: Optional[str] = None
    gigId: Optional[str] = None

class EvaluateSubmissionResponse(BaseModel):
    success: bool
    evaluation: Dict[str, Any]
    autoApproved: bool
    settlement: Dict[str, Any]

# --- Endpoints ---

@app.get("/api/status")
async def get_status():
    """System health check"""
    try:
        return {"status": "online", "version": __version__, **describe_active_models()}
    except Exception as e:
        logger.error("Status check failed: %s", e)
        return {"status": "degraded", "error": str(e)}

@app.post("/api/evaluate-submission", response_model=EvaluateSubmissionResponse)
def evaluate_submission(request: EvaluateSubmissionRequest):
    """Evaluate a submission's video and settle the outcome."""
    status_code, body = handle_evaluate_request(request.submissionId, request.gigId)
    if status_code != 200:
        return JSONResponse(status_code=status_code, content=body)
    return body

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
