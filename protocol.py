class MessageType:
    # client -> server
    JOIN = "Join"
    UPDATE_POSITION = "UpdatePosition"
    LEAVE = "Leave"
    # server -> client
    PLAYER_JOINED = "PlayerJoined"
    PLAYER_LEFT = "PlayerLeft"
    PLAYER_MOVED = "PlayerMoved"
    GAME_STATE = "GameState"
    ERROR = "Error"


class Direction:
    CLIENT = "client"
    SERVER = "server"
