"""Vehicle document recognition service.

Recognizes license plates, vehicle identification numbers, and repair
invoices from uploaded photos through a remote OCR engine, and mines
amounts, dates, and service items from the recognized text.
"""
