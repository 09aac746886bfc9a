# QMR Guard - HTTP wiring (dispatcher + administrative routes)
