from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase JSON 키를 사용하는 모델 기본 클래스

    단말 저장소와 백엔드 모두 camelCase 키를 사용한다.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        """저장/전송용 camelCase 딕셔너리로 직렬화"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
