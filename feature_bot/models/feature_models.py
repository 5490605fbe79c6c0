from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class Action(BaseModel):
    """Действие: кнопка внутри функции или подменю"""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    description: str = ""
    emoji: str = "⚙️"


class Submenu(BaseModel):
    """Подменю с собственным набором действий"""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    description: str = ""
    emoji: str = "📋"
    actions: List[Action] = Field(default_factory=list)


class Feature(BaseModel):
    """Функция бота, хранится в features.json"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str
    description: str
    emoji: str = "🎯"
    enabled: bool = True
    submenus: List[Submenu] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=list)
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    def find_submenu(self, submenu_id: str) -> Optional[Submenu]:
        return next((s for s in self.submenus if s.id == submenu_id), None)

    def find_action(self, action_id: str) -> Optional[Action]:
        """Ищет действие сначала в корне функции, затем во всех подменю"""
        for action in self.actions:
            if action.id == action_id:
                return action
        for submenu in self.submenus:
            for action in submenu.actions:
                if action.id == action_id:
                    return action
        return None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
