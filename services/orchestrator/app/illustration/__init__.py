from .engine import IllustrationResult, Illustrator, ImageArtifact

__all__ = ["IllustrationResult", "Illustrator", "ImageArtifact"]
