"""
Lesson content export pipeline.

assemble -> paginate (height probing) -> template -> rasterize -> distribute

Entry points: src.export.controller.ExportController for full jobs and
src.export.pipeline.ExportPipeline for generation or page previews.
"""
