"""
Recommender lifecycle package.

Cấu trúc:
- methods.py / definition.py: method tokens và recommender definition
- schema.py: schema directory, properties, index, model và view tables
- partitioner.py: chia training data thành các cell theo context
- kernels.py / strategies.py: build model cho từng method
- materializer.py / builder.py: CREATE RECOMMENDER
- destroyer.py: DROP RECOMMENDER
- catalog.py: đọc / ghi directory và index tables
"""
