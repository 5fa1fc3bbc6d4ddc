from tortoise import fields

from .base import UUIDModel


class Chunk(UUIDModel):
    document = fields.ForeignKeyField("models.Document", related_name="chunks", on_delete=fields.CASCADE)
    position = fields.IntField()
    text = fields.TextField()
    chunk_sha256 = fields.CharField(max_length=64, index=True)
    embedding = fields.JSONField(null=True, description="Embedding vector, null until embedded")

    @property
    def text_preview(self) -> str:
        return self.text[:157] + "..." if len(self.text) > 160 else self.text

    class Meta:
        table = "chunks"
        unique_together = (("document", "position"),)
        ordering = ["position"]
