from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ExecutionPlan(BaseModel):
    uuid: UUID = Field(default_factory=uuid4)
    requested: str
    order: list[str]
    waves: list[list[str]]
    current_wave: int = -1

    def proceed(self) -> list[str]:
        if self.current_wave + 1 >= len(self.waves):
            raise IndexError("execution plan has no waves left")

        self.current_wave += 1
        return self.waves[self.current_wave]

    @property
    def complete(self) -> bool:
        return self.current_wave >= len(self.waves) - 1

    def __contains__(self, name: object) -> bool:
        return name in self.order
