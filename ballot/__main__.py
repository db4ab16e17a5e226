import uvicorn

from ballot.config import HOST, PORT

if __name__ == "__main__":
    uvicorn.run("ballot.main:app", host=HOST, port=PORT)
