import base64
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, File, UploadFile
from sqlalchemy.orm import Session

from database.db import get_db
from dependencies.auth import get_current_user_id
from services.classifier import PredictionClient, get_prediction_client
from services.pipeline import (
    DetectionLister,
    DetectionPipeline,
    ManualSaveHandler,
    sanitize_prediction,
)
from services.store import DetectionStore, UserLinker

router = APIRouter(prefix="/api/v1/detection", tags=["detection"])


def serialize_record(record):
    return {
        "id": record.id,
        "image": base64.b64encode(record.image).decode("ascii") if record.image is not None else None,
        "prediction": sanitize_prediction(record.prediction),
        "confidence": record.confidence,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
        "userId": record.owner_id,
    }


@router.post("/")
async def process_image(
    image: Optional[List[UploadFile]] = File(None, description="Exactly one image file"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: PredictionClient = Depends(get_prediction_client),
):
    """
    Classify an uploaded image and save the result for the current user.
    """
    pipeline = DetectionPipeline(client, DetectionStore(db), UserLinker(db))
    prediction = await pipeline.process(image or [], user_id)

    return {
        "status": "success",
        "data": {"prediction": prediction},
    }


@router.post("/save-prediction", status_code=201)
async def save_prediction(
    payload: Any = Body(None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Save a prediction computed by the client, without an image.
    """
    record = await ManualSaveHandler(DetectionStore(db)).save(payload, user_id)

    return {
        "status": "success",
        "message": "Prediction saved successfully!",
        "data": {"prediction": serialize_record(record)},
    }


@router.get("/get-detections")
async def get_detections(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    detections = await DetectionLister(DetectionStore(db)).list(user_id)

    return {
        "status": "success",
        "results": len(detections),
        "data": {"detections": [serialize_record(d) for d in detections]},
    }
