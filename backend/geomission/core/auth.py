from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

http_bearer = HTTPBearer(auto_error=False)


async def get_access_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> str:
    """발급 주체가 외부에 있는 불투명 bearer 토큰을 그대로 꺼내 원격 API로 전달합니다."""
    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="미션 참여를 위해 먼저 로그인해주세요.")
    return credentials.credentials.strip()
