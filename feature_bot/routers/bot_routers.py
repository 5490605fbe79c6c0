import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from feature_bot.errors import DuplicateId, NotFound, ValidationError
from feature_bot.models import BotStatus, Feature, FeatureListResponse, FeatureUpdate
from feature_bot.services import BotServices

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> BotServices:
    """Сервисы бота из состояния приложения FastAPI"""
    return request.app.state.services


def require_admin(
        x_admin_token: Optional[str] = Header(default=None),
        services: BotServices = Depends(get_services)) -> None:
    secret = services.config.SECRET_KEY
    if secret and x_admin_token != secret:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("/status", response_model=BotStatus)
async def get_bot_status(services: BotServices = Depends(get_services)):
    """Получение статуса бота"""
    features = await services.registry.list()
    return BotStatus(
        status="running",
        message=f"{services.config.BOT_NAME} работает",
        features_total=len(features),
        features_enabled=sum(1 for f in features if f.enabled),
        ai_enabled=services.generator.ai_enabled,
    )


@router.get(
    "/features",
    response_model=FeatureListResponse,
    dependencies=[Depends(require_admin)])
async def list_features(
        enabled: Optional[bool] = None,
        services: BotServices = Depends(get_services)):
    return FeatureListResponse(features=await services.registry.list(enabled=enabled))


@router.get(
    "/features/{feature_id}",
    response_model=Feature,
    dependencies=[Depends(require_admin)])
async def get_feature(feature_id: str, services: BotServices = Depends(get_services)):
    feature = await services.registry.get(feature_id)
    if feature is None:
        raise HTTPException(status_code=404, detail=f"Feature {feature_id} not found")
    return feature


@router.post(
    "/features",
    response_model=Feature,
    status_code=201,
    dependencies=[Depends(require_admin)])
async def create_feature(
        data: Dict[str, Any],
        services: BotServices = Depends(get_services)):
    """Добавление функции; обработчик создаётся автоматически"""
    try:
        return await services.registry.add(data)
    except DuplicateId as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.patch(
    "/features/{feature_id}",
    response_model=Feature,
    dependencies=[Depends(require_admin)])
async def update_feature(
        feature_id: str,
        patch: FeatureUpdate,
        services: BotServices = Depends(get_services)):
    try:
        return await services.registry.update(feature_id, patch.to_patch())
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/features/{feature_id}", dependencies=[Depends(require_admin)])
async def delete_feature(feature_id: str, services: BotServices = Depends(get_services)):
    try:
        await services.registry.remove(feature_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info(f"Feature {feature_id} deleted via API")
    return {"status": "deleted", "id": feature_id}
